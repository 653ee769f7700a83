from .service import ConversionOrchestrator
from .models import ConversionItem, ConversionOptions, ImageFormat, ItemStatus

__all__ = ["ConversionOrchestrator", "ConversionItem", "ConversionOptions", "ImageFormat", "ItemStatus"]
