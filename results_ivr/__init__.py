"""
Results IVR

電話のキーパッドで検査結果を案内する Vonage 音声アプリケーション
"""

__version__ = "0.1.0"

from results_ivr.config import Config, ConfigurationError

__all__ = ["Config", "ConfigurationError"]
