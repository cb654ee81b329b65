import logging
import os
from dataclasses import dataclass


@dataclass
class EngineSettings:
    port: int
    log_level: str
    max_dimension: int
    max_pixels: int
    max_upload_bytes: int
    edge_detect_max_pixels: int
    adaptive_iterations: int
    timeout: float
    retries: int
    cache_ttl: float
    cache_size: int

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            port=int(os.getenv("PORT", "5600")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            max_dimension=int(os.getenv("MAX_DIMENSION", "8000")),
            max_pixels=int(os.getenv("MAX_PIXELS", "10000000")),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024))),
            edge_detect_max_pixels=int(os.getenv("EDGE_DETECT_MAX_PIXELS", "8000000")),
            adaptive_iterations=int(os.getenv("ADAPTIVE_ITERATIONS", "5")),
            timeout=float(os.getenv("SOURCE_TIMEOUT", "10.0")),
            retries=int(os.getenv("SOURCE_RETRIES", "2")),
            cache_ttl=float(os.getenv("CACHE_TTL", "300")),
            cache_size=int(os.getenv("CACHE_SIZE", "16")),
        )


SETTINGS = EngineSettings.from_env()


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=SETTINGS.log_level)
    return logging.getLogger("pixel_unfake")
