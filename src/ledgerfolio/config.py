import os
from dataclasses import dataclass

from .calculator.models import PerformanceCalculationType
from .currency import Currency

ENV_BASE_CURRENCY = "LEDGERFOLIO_BASE_CURRENCY"
ENV_CALCULATION_TYPE = "LEDGERFOLIO_CALCULATION_TYPE"
ENV_FX_LOOKBACK_DAYS = "LEDGERFOLIO_FX_LOOKBACK_DAYS"
ENV_MAX_WORKERS = "LEDGERFOLIO_MAX_WORKERS"


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


@dataclass
class EngineSettings:
    """Defaults for a calculation, overridable through the environment."""
    base_currency: Currency = Currency.USD
    calculation_type: PerformanceCalculationType = PerformanceCalculationType.ROI
    fx_lookback_days: int = 14
    max_workers: int = 1

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineSettings":
        """
        Read settings from environment variables.

        Entry points call ``load_dotenv()`` first, so a ``.env`` file in the
        working directory is honoured. Unset variables keep their defaults.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Returns:
            EngineSettings populated from the environment.

        Raises:
            ValueError: If a variable holds an unknown currency, an unknown
                calculation type or a non-positive integer.
        """
        env = os.environ if environ is None else environ
        settings = cls()

        base_currency = env.get(ENV_BASE_CURRENCY)
        if base_currency:
            try:
                settings.base_currency = Currency(base_currency.strip().upper())
            except ValueError:
                raise ValueError(f"{ENV_BASE_CURRENCY}: unknown currency {base_currency!r}") from None

        calculation_type = env.get(ENV_CALCULATION_TYPE)
        if calculation_type:
            try:
                settings.calculation_type = PerformanceCalculationType(calculation_type.strip().upper())
            except ValueError:
                raise ValueError(f"{ENV_CALCULATION_TYPE}: unsupported calculation type {calculation_type!r}") from None

        lookback = env.get(ENV_FX_LOOKBACK_DAYS)
        if lookback:
            settings.fx_lookback_days = _positive_int(ENV_FX_LOOKBACK_DAYS, lookback)

        max_workers = env.get(ENV_MAX_WORKERS)
        if max_workers:
            settings.max_workers = _positive_int(ENV_MAX_WORKERS, max_workers)

        return settings
