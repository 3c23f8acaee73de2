from .kraken_rest import KrakenRESTClient

__all__ = ["KrakenRESTClient"]
