"""
Flagscan - Конфигурация движка

Загрузка порогов индикаторов, классификатора и сентимента из переменных
окружения с валидацией через Pydantic.
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Основные настройки движка сигналов."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Настройки приложения
    app_name: str = Field(
        default="Flagscan",
        description="Название приложения",
    )
    log_level: str = Field(
        default="INFO",
        description="Уровень логирования",
    )

    # Индикаторы
    ema_periods: List[int] = Field(
        default_factory=lambda: [5, 10, 20, 50],
        description="Периоды EMA для выравнивания флага (от быстрой к медленной)",
    )
    rsi_period: int = Field(default=14, description="Период RSI")
    macd_fast: int = Field(default=12, description="Быстрый период MACD")
    macd_slow: int = Field(default=26, description="Медленный период MACD")
    macd_signal: int = Field(default=9, description="Период сигнальной линии MACD")
    adx_period: int = Field(default=14, description="Период ADX/ATR")

    # Классификатор флагов
    adx_strong_threshold: float = Field(
        default=25.0,
        description="ADX выше этого значения - сильный тренд",
    )
    adx_medium_threshold: float = Field(
        default=20.0,
        description="Нижняя граница ADX для среднего сигнала",
    )
    atr_floor_percent: float = Field(
        default=0.1,
        description="Минимальный ATR в % от цены для сильного сигнала",
    )
    volume_lookback: int = Field(
        default=20,
        description="Сколько свечей усреднять для подтверждения объёмом",
    )
    doji_body_ratio: float = Field(
        default=0.2,
        description="Тело/диапазон меньше этого значения - доджи",
    )
    higher_timeframe: str = Field(
        default="",
        description="Старший таймфрейм для подтверждения (пусто - следующий за рабочим: 15m -> 4h, 4h -> 1d)",
    )

    # RSI зоны и основной тренд
    rsi_zone_lookback: int = Field(
        default=14,
        description="Сколько последних значений RSI смотреть для зоны pump/dump",
    )
    rsi_max_zone_swing: float = Field(
        default=30.0,
        description="Размах RSI от этого значения - MAX ZONE",
    )
    zone_flag_min_history: int = Field(
        default=200,
        description="Минимум свечей для флага по RSI зоне",
    )
    main_trend_fast: int = Field(default=70, description="Быстрая EMA основного тренда")
    main_trend_slow: int = Field(default=200, description="Медленная EMA основного тренда")

    # Сессии
    daily_session_utc_offset_hours: int = Field(
        default=8,
        description="Часовой пояс дневной сессии (UTC+8)",
    )
    daily_session_anchor_hour: int = Field(
        default=8,
        description="Локальный час начала дневной сессии",
    )

    # Funding
    funding_stale_after_ms: int = Field(
        default=120_000,
        description="Через сколько мс funding считается устаревшим (2 минуты)",
    )
    squeeze_strong_ratio: float = Field(
        default=0.60,
        description="Доля выше этого значения - сильный перекос squeeze/trap",
    )
    squeeze_mild_ratio: float = Field(
        default=0.55,
        description="Доля выше этого значения - умеренный перекос",
    )
    top_candidates: int = Field(
        default=5,
        description="Сколько кандидатов squeeze/trap показывать",
    )
    candidate_min_volume: float = Field(
        default=50_000_000,
        description="Минимальный объём 24h в USD для кандидата",
    )
    strong_volume: float = Field(
        default=100_000_000,
        description="Объём 24h в USD, считающийся сильным",
    )

    # Бэктест
    backtest_take_profit: float = Field(
        default=0.02,
        description="Тейк-профит (0.02 = 2%)",
    )
    backtest_stop_loss: float = Field(
        default=0.01,
        description="Стоп-лосс (0.01 = 1%)",
    )

    # Цикл обновления
    max_concurrency: int = Field(
        default=10,
        description="Сколько инструментов обрабатывать одновременно",
    )
    candle_limit: int = Field(
        default=200,
        description="Сколько свечей запрашивать у поставщика",
    )

    @field_validator("ema_periods", mode="before")
    @classmethod
    def parse_ema_periods(cls, v):
        """Парсинг списка периодов EMA из строки."""
        if isinstance(v, str):
            if not v:
                return [5, 10, 20, 50]
            return [int(x.strip()) for x in v.split(",") if x.strip()]
        return v

    @field_validator("ema_periods")
    @classmethod
    def check_ema_periods(cls, v: List[int]) -> List[int]:
        """Периоды должны идти от быстрой EMA к медленной."""
        if len(v) < 2 or any(a >= b for a, b in zip(v, v[1:])):
            raise ValueError("ema_periods must be strictly increasing with at least two periods")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Получение настроек движка.

    Кэшируется для повторного использования.
    """
    return Settings()


# Экспортируем настройки для удобства импорта
settings = get_settings()
