"""Market price and balance analytics for TDEX liquidity providers: services, storage, rates and a settings command."""

__version__ = "0.0.1"