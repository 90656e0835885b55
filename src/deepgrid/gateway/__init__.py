from .base import ExchangeGateway
from .indexer import DeepbookIndexer
from .paper import PaperGateway

__all__ = ["ExchangeGateway", "DeepbookIndexer", "PaperGateway"]
