from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional
import httpx
import logging
from lendcircle.core.config import settings
from lendcircle.core.exceptions import RateProviderUnavailable, ValidationError

logger = logging.getLogger(__name__)

RATE_PRECISION = Decimal("0.000001")

# code -> (symbol, name)
SUPPORTED_CURRENCIES: Dict[str, tuple] = {
    "USD": ("$", "US Dollar"),
    "EUR": ("€", "Euro"),
    "GBP": ("£", "British Pound"),
    "JPY": ("¥", "Japanese Yen"),
    "AUD": ("A$", "Australian Dollar"),
    "CAD": ("C$", "Canadian Dollar"),
    "CHF": ("CHF", "Swiss Franc"),
    "CNY": ("¥", "Chinese Yuan"),
    "INR": ("₹", "Indian Rupee"),
    "MXN": ("MX$", "Mexican Peso"),
}

# Units per 1 USD
FALLBACK_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("149.5"),
    "AUD": Decimal("1.52"),
    "CAD": Decimal("1.36"),
    "CHF": Decimal("0.88"),
    "CNY": Decimal("7.24"),
    "INR": Decimal("83.12"),
    "MXN": Decimal("17.24"),
}

# Currencies quoted without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY"}


def fallback_rates(base: str) -> Dict[str, Decimal]:
    """Static rates for `base`, cross-derived from the USD table"""
    base = base.upper()
    pivot = FALLBACK_RATES.get(base)
    if pivot is None:
        raise ValidationError(f"Unsupported currency: {base}")
    if base == "USD":
        return dict(FALLBACK_RATES)
    return {
        code: (rate / pivot).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
        for code, rate in FALLBACK_RATES.items()
    }


def get_currency_symbol(currency_code: str) -> str:
    entry = SUPPORTED_CURRENCIES.get(currency_code.upper())
    return entry[0] if entry else currency_code


def get_currency_name(currency_code: str) -> str:
    entry = SUPPORTED_CURRENCIES.get(currency_code.upper())
    return entry[1] if entry else currency_code


def format_currency(amount, currency_code: str) -> str:
    """
    Format an amount with its currency symbol.

    Yen is shown without decimals, everything else with two.
    """
    symbol = get_currency_symbol(currency_code)
    amount = Decimal(str(amount))
    if currency_code.upper() in ZERO_DECIMAL_CURRENCIES:
        return f"{symbol}{amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP):,.0f}"
    return f"{symbol}{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f}"


class ExchangeRateProvider:
    """
    Client for `GET {base_url}/{base}` answering `{"rates": {code: rate}}`.

    Any transport failure, timeout, non-2xx answer or malformed body is
    raised as RateProviderUnavailable.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.EXCHANGE_RATE_API_URL).rstrip("/")
        self.timeout = settings.EXCHANGE_RATE_TIMEOUT_SECONDS if timeout is None else timeout
        self.transport = transport

    async def fetch(self, base: str) -> Dict[str, Decimal]:
        base = base.upper()
        url = f"{self.base_url}/{base}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            raise RateProviderUnavailable(f"Timed out fetching exchange rates for {base}", base=base) from e
        except httpx.HTTPError as e:
            raise RateProviderUnavailable(f"Failed to fetch exchange rates for {base}: {e}", base=base) from e
        except ValueError as e:
            raise RateProviderUnavailable(f"Malformed exchange rate response for {base}", base=base) from e

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or not rates:
            raise RateProviderUnavailable(f"Exchange rate response for {base} has no rates", base=base)

        try:
            parsed = {str(code).upper(): Decimal(str(rate)) for code, rate in rates.items()}
        except ArithmeticError as e:
            raise RateProviderUnavailable(f"Malformed exchange rate response for {base}", base=base) from e

        logger.info(f"Fetched {len(parsed)} exchange rates for {base}")
        return parsed
