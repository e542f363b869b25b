"""
설정 어댑터

pydantic-settings 기반으로 ConfigPort를 구현합니다.
ENVIRONMENT 환경 변수에 따라 개발/운영/테스트 설정 클래스를 선택합니다.
"""

import os
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.ports import ConfigPort


class BaseConfig(BaseSettings, ConfigPort):
    """기본 설정 클래스"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 환경 설정
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # 데이터베이스 설정
    database_url: str = Field(default="sqlite+aiosqlite:///./mailsync.db")
    database_busy_timeout_ms: int = Field(default=5000)

    # Google OAuth / Gmail API 설정
    google_client_id: str = Field(...)
    google_client_secret: str = Field(...)
    token_url: str = Field(default="https://oauth2.googleapis.com/token")
    api_base_url: str = Field(default="https://gmail.googleapis.com/gmail/v1/users/me")
    http_timeout: float = Field(default=30.0)

    # 암호화 설정
    encryption_key: str = Field(...)

    # 로깅 설정
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # 동기화 설정
    retry_max_attempts: int = Field(default=10)
    retry_base_delay_ms: int = Field(default=60_000)
    hydrate_concurrency: int = Field(default=10)
    watch_interval_seconds: float = Field(default=15.0)
    page_size: int = Field(default=25)

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v):
        """암호화 키 검증"""
        if len(v) < 32:
            # 32바이트 미만이면 패딩
            v = v.ljust(32, "0")
        elif len(v) > 32:
            # 32바이트 초과면 자르기
            v = v[:32]
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """로그 레벨 검증"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"로그 레벨은 {valid_levels} 중 하나여야 합니다")
        return v.upper()

    @field_validator("retry_max_attempts", "hydrate_concurrency", "page_size")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("1 이상의 값이어야 합니다")
        return v

    # ConfigPort 인터페이스 구현
    def get_environment(self) -> str:
        return self.environment

    def is_debug(self) -> bool:
        return self.debug

    def get_database_url(self) -> str:
        return self.database_url

    def get_database_busy_timeout_ms(self) -> int:
        return self.database_busy_timeout_ms

    def get_google_client_id(self) -> str:
        return self.google_client_id

    def get_google_client_secret(self) -> str:
        return self.google_client_secret

    def get_token_url(self) -> str:
        return self.token_url

    def get_api_base_url(self) -> str:
        return self.api_base_url

    def get_http_timeout(self) -> float:
        return self.http_timeout

    def get_encryption_key(self) -> str:
        return self.encryption_key

    def get_log_level(self) -> str:
        return self.log_level

    def get_log_format(self) -> str:
        return self.log_format

    def get_retry_max_attempts(self) -> int:
        return self.retry_max_attempts

    def get_retry_base_delay_ms(self) -> int:
        return self.retry_base_delay_ms

    def get_hydrate_concurrency(self) -> int:
        return self.hydrate_concurrency

    def get_watch_interval_seconds(self) -> float:
        return self.watch_interval_seconds

    def get_page_size(self) -> int:
        return self.page_size

    def get_log_config(self) -> dict:
        """로그 설정 조회"""
        return {
            "level": self.log_level,
            "format": self.log_format,
        }


class DevelopmentConfig(BaseConfig):
    """개발 환경 설정"""

    environment: str = "development"
    debug: bool = True
    log_level: str = "DEBUG"

    # 개발용 더미 값들 (실제 사용 시 .env 파일에서 설정)
    google_client_id: str = Field(default="dev_client_id")
    google_client_secret: str = Field(default="dev_client_secret")
    encryption_key: str = Field(default="dev_encryption_key_32_bytes_long")


class ProductionConfig(BaseConfig):
    """운영 환경 설정"""

    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    @field_validator("google_client_secret", "encryption_key")
    @classmethod
    def validate_production_secrets(cls, v):
        """운영 환경에서는 모든 시크릿이 필수"""
        if not v or v.startswith("dev_") or v.startswith("test_"):
            raise ValueError("운영 환경에서는 실제 시크릿 값이 필요합니다")
        return v


class TestingConfig(BaseConfig):
    """테스트 환경 설정"""

    environment: str = "testing"
    debug: bool = True
    log_level: str = "WARNING"

    # 테스트용 기본값들
    database_url: str = Field(default="sqlite+aiosqlite:///:memory:")

    google_client_id: str = "test_client_id"
    google_client_secret: str = "test_client_secret"
    encryption_key: str = "test_encryption_key_32_bytes_long"
    retry_base_delay_ms: int = 1
    watch_interval_seconds: float = 0.01


class ConfigAdapter:
    """설정 어댑터 팩토리"""

    @staticmethod
    def create_config() -> ConfigPort:
        """환경에 따른 설정 객체를 생성합니다."""
        environment = os.getenv("ENVIRONMENT", "development").lower()

        if environment == "production":
            return ProductionConfig()
        elif environment == "testing":
            return TestingConfig()
        else:
            return DevelopmentConfig()


# 전역 설정 인스턴스
_config: Optional[ConfigPort] = None


def get_config() -> ConfigPort:
    """전역 설정 인스턴스를 반환합니다."""
    global _config
    if _config is None:
        _config = ConfigAdapter.create_config()
    return _config


def initialize_config() -> ConfigPort:
    """설정을 초기화합니다."""
    global _config
    _config = ConfigAdapter.create_config()
    return _config
