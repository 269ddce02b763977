"""Signal provider registry — maps provider names to classes.

Used by the engine to build its default provider from ``Config.signal_provider``.
"""

from signalforge.strategy.base import SignalProvider
from signalforge.strategy.ma_signals import MovingAverageSignalProvider


SIGNAL_PROVIDER_REGISTRY: dict[str, type] = {
    "moving_average": MovingAverageSignalProvider,
}


def get_signal_provider(name: str, **kwargs) -> SignalProvider:
    """Look up and instantiate a signal provider by registry key.

    Raises ``KeyError`` if the provider name is not registered.
    """
    if name not in SIGNAL_PROVIDER_REGISTRY:
        raise KeyError(
            f"Unknown signal provider '{name}'. "
            f"Available: {', '.join(SIGNAL_PROVIDER_REGISTRY.keys())}"
        )
    return SIGNAL_PROVIDER_REGISTRY[name](**kwargs)
