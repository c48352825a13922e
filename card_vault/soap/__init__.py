"""SOAP envelope building and the Vault HTTP client."""
