"""
Runtime configuration for the FTA compliance engine.
Regulatory constants live here so validators never hard-code them.
"""
import os
from decimal import Decimal
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError


class ConfigurationError(ValueError):
    """Raised when environment settings cannot be parsed"""
    pass


class ComplianceSettings(BaseModel):
    """
    Regulatory constants and runtime options.

    Instances are immutable; build a new one with ``model_copy(update=...)``
    to tweak a single value in tests.
    """
    model_config = ConfigDict(frozen=True)

    # Arithmetic
    amount_tolerance: Decimal = Decimal('0.01')

    # VAT (Federal Decree-Law No. 8 of 2017)
    standard_vat_rate: Decimal = Decimal('5')
    allowed_vat_rates: Tuple[Decimal, ...] = (Decimal('0'), Decimal('5'))
    vat_introduction_year: int = 2018

    # Corporate Income Tax (Federal Decree-Law No. 47 of 2022)
    cit_rate: Decimal = Decimal('0.09')
    cit_threshold: Decimal = Decimal('375000')
    cit_introduction_year: int = 2023

    # Business rule thresholds
    large_invoice_threshold: Decimal = Decimal('1000')
    round_number_threshold: Decimal = Decimal('500')
    large_vat_due_threshold: Decimal = Decimal('50000')
    high_margin_percent: Decimal = Decimal('50')

    # Document generation
    default_currency: str = 'AED'
    render_width: int = 80
    signing_key_path: Optional[str] = None
    require_phase2_compliance: bool = False

    @classmethod
    def from_env(cls, prefix: str = 'FTA_') -> 'ComplianceSettings':
        """
        Build settings from environment variables.

        Recognised variables (with the default prefix):
            FTA_CURRENCY, FTA_SIGNING_KEY_PATH, FTA_REQUIRE_PHASE2,
            FTA_RENDER_WIDTH, FTA_AMOUNT_TOLERANCE
        """
        overrides = {}

        currency = os.environ.get(f'{prefix}CURRENCY')
        if currency:
            overrides['default_currency'] = currency.upper()

        key_path = os.environ.get(f'{prefix}SIGNING_KEY_PATH')
        if key_path:
            overrides['signing_key_path'] = key_path

        require = os.environ.get(f'{prefix}REQUIRE_PHASE2')
        if require is not None:
            overrides['require_phase2_compliance'] = require.strip().lower() in ('1', 'true', 'yes', 'on')

        width = os.environ.get(f'{prefix}RENDER_WIDTH')
        if width:
            overrides['render_width'] = width

        tolerance = os.environ.get(f'{prefix}AMOUNT_TOLERANCE')
        if tolerance:
            overrides['amount_tolerance'] = tolerance

        try:
            return cls(**overrides)
        except ValidationError as e:
            problems = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
            raise ConfigurationError(f"Invalid {prefix}* environment settings: {problems}") from e


DEFAULT_SETTINGS = ComplianceSettings()
