"""
Pipelines Package

Batch pipelines over the record ledgers:
- Alert scanning: watermarked matching of new transactions against alerts
- Flip detection: consecutive resales of the same logical unit
"""
from src.dxbdata.pipelines.alert_scanner import AlertScanner
from src.dxbdata.pipelines.flip_detector import FlipDetector

__all__ = ["AlertScanner", "FlipDetector"]
