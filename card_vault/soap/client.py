from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

import requests

from ..models.config_models import DEFAULT_SUCCESS_CODES, RetryConfig
from ..models.execution_result import ErrorCode
from .envelope import Envelope
from .response import ParsedResponse, RegexResponseParser, ResponseParser

"""Vault SOAP client.

Posts one envelope and classifies the outcome:

- success: HTTP 2xx and ErrCode accepted by the SuccessPolicy
- HTTP_ERROR: non-2xx status
- VAULT_ERROR: 2xx but the business code rejects the card
- REQUEST_TIMEOUT / REQUEST_FAILED: transport exceptions

Retries are opt-in through RetryPolicy and never apply to VAULT_ERROR.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "RetryPolicy",
    "SuccessPolicy",
    "VaultClient",
    "VaultResponse",
]

RETRYABLE_CODES = frozenset({ErrorCode.HTTP_ERROR.value, ErrorCode.REQUEST_FAILED.value, ErrorCode.REQUEST_TIMEOUT.value})


@dataclass(frozen=True)
class SuccessPolicy:
    """Business success codes.

    "1" is accepted alongside "0" because the legacy responder returns it for
    accepted cards; drop it here if a deployment treats "1" as a rejection.
    """
    codes: frozenset[str] = frozenset(DEFAULT_SUCCESS_CODES)

    @staticmethod
    def of(codes: Iterable[str]) -> SuccessPolicy:
        return SuccessPolicy(codes=frozenset(str(c).strip() for c in codes))

    def accepts(self, err_code: str | None) -> bool:
        return err_code is not None and err_code.strip() in self.codes


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff. max_attempts=1 disables retries."""
    max_attempts: int = 1
    backoff_seconds: float = 1.0
    multiplier: float = 2.0
    max_backoff_seconds: float = 30.0
    retry_on: frozenset[str] = field(default=RETRYABLE_CODES)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if ErrorCode.VAULT_ERROR.value in self.retry_on:
            raise ValueError("VAULT_ERROR is a business rejection and cannot be retried")

    @staticmethod
    def from_config(cfg: RetryConfig) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=cfg.max_attempts,
            backoff_seconds=cfg.backoff_seconds,
            multiplier=cfg.multiplier,
            max_backoff_seconds=cfg.max_backoff_seconds,
        )

    def should_retry(self, code: str | None, attempt: int) -> bool:
        return code in self.retry_on and attempt < self.max_attempts

    def delay(self, attempt: int) -> float:
        """Delay before attempt+1 (attempt is 1-based)."""
        return min(self.backoff_seconds * (self.multiplier ** (attempt - 1)), self.max_backoff_seconds)


@dataclass(frozen=True)
class VaultResponse:
    success: bool
    http_status: int | None
    err_code: str | None = None
    err_message: str | None = None
    card_id: str | None = None
    error_code: str | None = None  # ErrorCode value when not success
    error_message: str | None = None
    raw: str = ""
    attempts: int = 1
    duration_ms: int = 0

    @property
    def raw_snippet(self) -> str:
        return self.raw[:500]


class VaultClient:
    """HTTP transport for Vault SOAP calls.

    session is injectable (tests pass a fake); the client owns a
    requests.Session otherwise. requests.Session is shared across worker
    threads for connection pooling.
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout_seconds: float = 30.0,
        success_policy: SuccessPolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        parser: ResponseParser | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.timeout_seconds = timeout_seconds
        self.success_policy = success_policy or SuccessPolicy()
        self.retry_policy = retry_policy or RetryPolicy()
        self.parser = parser or RegexResponseParser()
        self.session = session or requests.Session()
        self._sleep = sleep

    @staticmethod
    def headers_for(envelope: Envelope) -> dict[str, str]:
        if envelope.version == "1.2":
            return {
                "Content-Type": f'application/soap+xml; charset=utf-8; action="{envelope.soap_action}"',
            }
        return {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": envelope.soap_action,
        }

    def classify(self, http_status: int, parsed: ParsedResponse) -> tuple[bool, str | None, str | None]:
        if not 200 <= http_status < 300:
            return False, ErrorCode.HTTP_ERROR.value, f"HTTP {http_status}"
        if self.success_policy.accepts(parsed.err_code):
            return True, None, None
        message = parsed.err_message or f"Vault rejected card (ErrCode={parsed.err_code})"
        return False, ErrorCode.VAULT_ERROR.value, message

    def _post_once(self, envelope: Envelope) -> VaultResponse:
        started = time.monotonic()
        try:
            resp = self.session.post(
                self.endpoint_url,
                data=envelope.body.encode("utf-8"),
                headers=self.headers_for(envelope),
                timeout=self.timeout_seconds,
            )
            text = resp.text
        except requests.Timeout as e:
            return VaultResponse(
                success=False,
                http_status=None,
                error_code=ErrorCode.REQUEST_TIMEOUT.value,
                error_message=f"Request timed out after {self.timeout_seconds}s: {e}",
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        except requests.RequestException as e:
            return VaultResponse(
                success=False,
                http_status=None,
                error_code=ErrorCode.REQUEST_FAILED.value,
                error_message=str(e),
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        parsed = self.parser.parse(text)
        ok, code, message = self.classify(resp.status_code, parsed)
        return VaultResponse(
            success=ok,
            http_status=resp.status_code,
            err_code=parsed.err_code,
            err_message=parsed.err_message,
            card_id=parsed.card_id,
            error_code=code,
            error_message=message,
            raw=text,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    def send(self, envelope: Envelope) -> VaultResponse:
        """POST the envelope, retrying only as the RetryPolicy allows."""
        attempt = 1
        total_ms = 0
        while True:
            result = self._post_once(envelope)
            total_ms += result.duration_ms
            if result.success or not self.retry_policy.should_retry(result.error_code, attempt):
                break
            delay = self.retry_policy.delay(attempt)
            logger.warning(
                "%s %s attempt %d/%d failed (%s), retrying in %.1fs",
                envelope.action, self.endpoint_url, attempt, self.retry_policy.max_attempts,
                result.error_code, delay,
            )
            self._sleep(delay)
            attempt += 1
        return replace(result, attempts=attempt, duration_ms=total_ms)

    def close(self) -> None:
        self.session.close()
