from __future__ import annotations

from unittest.mock import Mock

import pytest
import requests

from card_vault.models.card_profile import CardProfile
from card_vault.models.config_models import RetryConfig, SoapConfig
from card_vault.soap.client import RetryPolicy, SuccessPolicy, VaultClient
from card_vault.soap.envelope import EnvelopeBuilder

ENDPOINT = "http://vault.test/VaultService.asmx"


def _envelope(version: str = "1.1"):
    return EnvelopeBuilder(SoapConfig(version=version)).build(CardProfile(card_no="1", name="A"))


def _client(session: Mock, **kwargs) -> VaultClient:
    return VaultClient(ENDPOINT, session=session, sleep=lambda s: None, **kwargs)


def test_soap11_headers():
    headers = VaultClient.headers_for(_envelope("1.1"))
    assert headers == {"Content-Type": "text/xml; charset=utf-8", "SOAPAction": "http://tempuri.org/AddCard"}


def test_soap12_headers_carry_action_in_content_type():
    headers = VaultClient.headers_for(_envelope("1.2"))
    assert headers == {"Content-Type": 'application/soap+xml; charset=utf-8; action="http://tempuri.org/AddCard"'}


def test_success_response(fake_session):
    resp = _client(fake_session, timeout_seconds=7).send(_envelope())
    assert resp.success is True
    assert resp.http_status == 200
    assert resp.err_code == "0"
    assert resp.card_id == "1001"
    assert resp.error_code is None
    assert resp.attempts == 1
    _, kwargs = fake_session.post.call_args
    assert kwargs["timeout"] == 7
    assert kwargs["data"].startswith(b"<?xml")


def test_code_one_counts_as_success_by_default(make_http_response, make_soap_response):
    session = Mock()
    session.post.return_value = make_http_response(200, make_soap_response("1", "Updated"))
    assert _client(session).send(_envelope()).success is True


def test_success_policy_is_configurable(make_http_response, make_soap_response):
    session = Mock()
    session.post.return_value = make_http_response(200, make_soap_response("1", "Updated"))
    resp = _client(session, success_policy=SuccessPolicy.of(["0"])).send(_envelope())
    assert resp.success is False
    assert resp.error_code == "VAULT_ERROR"
    assert resp.error_message == "Updated"


def test_business_rejection_is_vault_error(make_http_response, make_soap_response):
    session = Mock()
    session.post.return_value = make_http_response(200, make_soap_response("5", "Card exists", None))
    resp = _client(session).send(_envelope())
    assert resp.success is False
    assert resp.error_code == "VAULT_ERROR"
    assert resp.err_code == "5"
    assert resp.err_message == "Card exists"


def test_non_2xx_is_http_error(make_http_response):
    session = Mock()
    session.post.return_value = make_http_response(500, "<html>oops</html>")
    resp = _client(session).send(_envelope())
    assert resp.success is False
    assert resp.error_code == "HTTP_ERROR"
    assert resp.http_status == 500
    assert resp.raw_snippet == "<html>oops</html>"


def test_timeout_is_request_timeout():
    session = Mock()
    session.post.side_effect = requests.Timeout("read timed out")
    resp = _client(session).send(_envelope())
    assert resp.success is False
    assert resp.error_code == "REQUEST_TIMEOUT"
    assert resp.http_status is None


def test_connection_error_is_request_failed():
    session = Mock()
    session.post.side_effect = requests.ConnectionError("refused")
    resp = _client(session).send(_envelope())
    assert resp.error_code == "REQUEST_FAILED"
    assert "refused" in resp.error_message


def test_no_retry_by_default():
    session = Mock()
    session.post.side_effect = requests.ConnectionError("refused")
    _client(session).send(_envelope())
    assert session.post.call_count == 1


def test_retry_on_transport_errors_until_success(make_http_response):
    session = Mock()
    session.post.side_effect = [requests.ConnectionError("x"), requests.Timeout("y"), make_http_response()]
    delays: list[float] = []
    client = VaultClient(
        ENDPOINT,
        session=session,
        retry_policy=RetryPolicy(max_attempts=3, backoff_seconds=0.5, multiplier=2.0),
        sleep=delays.append,
    )
    resp = client.send(_envelope())
    assert resp.success is True
    assert resp.attempts == 3
    assert delays == [0.5, 1.0]


def test_vault_error_is_never_retried(make_http_response, make_soap_response):
    session = Mock()
    session.post.return_value = make_http_response(200, make_soap_response("9", "bad"))
    _client(session, retry_policy=RetryPolicy(max_attempts=5)).send(_envelope())
    assert session.post.call_count == 1


def test_retry_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(retry_on=frozenset({"VAULT_ERROR"}))


def test_retry_delay_is_capped():
    policy = RetryPolicy.from_config(RetryConfig(max_attempts=10, backoff_seconds=1, multiplier=10, max_backoff_seconds=5))
    assert policy.delay(1) == 1
    assert policy.delay(3) == 5
