from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

from .const import MAX_DEPTH


class ParserSettings(BaseSettings):
    max_depth: int = Field(default=MAX_DEPTH, ge=1, le=MAX_DEPTH)
    max_cells: int = Field(default=1 << 24, ge=1)
    full_resolution: bool = False
    verify_crc32c: bool = True
    check_stored_hashes: bool = True

    model_config = SettingsConfigDict(
        env_prefix='MYTONBLOCK_',
        env_file='.env',
        extra='ignore'
    )


@lru_cache()
def get_settings() -> ParserSettings:
    return ParserSettings()
