"""
Logging configuration for the credit ledger worker
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Any
from pydantic import BaseModel


@dataclass
class FileHandlerConfig:
    """Rotating file handler configuration"""

    enabled: bool = False
    log_dir: str = "logs"
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5
    app_log_enabled: bool = True
    error_log_enabled: bool = True


@dataclass
class ConsoleHandlerConfig:
    """Console handler configuration"""

    enabled: bool = True
    level: str = "INFO"


class LoggingConfig(BaseModel):
    """Complete logging configuration"""

    level: str = "INFO"
    format: str = "console"  # console, json, structured or simple

    file: FileHandlerConfig = FileHandlerConfig()
    console: ConsoleHandlerConfig = ConsoleHandlerConfig()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "format": self.format,
            "file": asdict(self.file),
            "console": asdict(self.console),
        }
