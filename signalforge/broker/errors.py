"""Broker-style trade return codes and their descriptions."""

_DESCRIPTIONS: dict[int, str] = {
    0: "No error",
    10004: "Requote",
    10006: "Request rejected",
    10007: "Request canceled by trader",
    10009: "Request completed",
    10010: "Only part of the request was completed",
    10011: "Request processing error",
    10013: "Invalid request",
    10014: "Invalid volume in the request",
    10015: "Invalid price in the request",
    10016: "Invalid stops in the request",
    10017: "Trade is disabled",
    10018: "Market is closed",
    10019: "There is not enough money to complete the request",
    10021: "There are no quotes to process the request",
    10024: "Too frequent requests",
    10027: "Autotrading disabled by client terminal",
    10031: "No connection with the trade server",
    10040: "The number of open positions has reached the limit",
}

# Errors where retrying the same request later may succeed
_RECOVERABLE = frozenset({10004, 10021, 10024, 10031})


def describe_error(code: int) -> str:
    """Return a human-readable description of a trade return code."""
    return _DESCRIPTIONS.get(code, f"Unknown error ({code})")


def is_recoverable(code: int) -> bool:
    return code in _RECOVERABLE


def format_error(code: int, message: str = "") -> str:
    """``"10019 (There is not enough money...): <message>"``"""
    text = f"{code} ({describe_error(code)})"
    if message:
        text += f": {message}"
    return text
