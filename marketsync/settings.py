from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    catalog_database_url: str = ""
    market_database_url: str = ""

    # 어드민 URL 생성용 (예: my-store.myshopify.com)
    shopify_store_url: str = ""

    # 전략 선택 기준
    graphql_variant_threshold: int = 80  # 이 개수를 넘으면 색상 분할(GraphQL)
    multi_color_variant_threshold: int = 50  # 다색상 + 이 개수 초과 시 분할
    max_colors_before_split: int = 3
    listing_variant_ceiling: int = 100  # 리스팅 1개당 플랫폼 variant 한도 (REST 폴백 가능 여부)

    client_timeout_seconds: float = 10.0
    max_color_workers: int = 4  # 색상별 원격 호출 병렬 처리 수

    # 가격 보정 계수
    premium_material_multiplier: float = 1.15
    feature_multiplier: float = 1.10
    warranty_step_rate: float = 0.05  # 기본 보증기간 초과 1년당 +5%
    warranty_base_years: int = 2
    premium_materials: list[str] = [
        "silk",
        "linen",
        "organic cotton",
        "bamboo",
        "hemp",
    ]

    failed_health_score: int = 25
    log_level: str = "INFO"

    @field_validator("catalog_database_url", "market_database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if v and not v.startswith("postgresql"):
            raise ValueError("DB URL must start with 'postgresql'")
        return v

    @field_validator(
        "graphql_variant_threshold",
        "multi_color_variant_threshold",
        "max_colors_before_split",
        "listing_variant_ceiling",
    )
    @classmethod
    def validate_positive_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError("threshold must be a positive integer")
        return v

    @field_validator("max_color_workers")
    @classmethod
    def validate_worker_count(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError("max_color_workers must be between 1 and 16")
        return v

    @field_validator("client_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("client_timeout_seconds must be greater than 0")
        return v

    @field_validator("premium_material_multiplier", "feature_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError("price multipliers must be at least 1.0")
        return v

    @field_validator("failed_health_score")
    @classmethod
    def validate_health_score(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("failed_health_score must be between 0 and 100")
        return v

    @field_validator("premium_materials")
    @classmethod
    def normalize_materials(cls, v: list[str]) -> list[str]:
        return [m.strip().lower() for m in v if m and m.strip()]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
