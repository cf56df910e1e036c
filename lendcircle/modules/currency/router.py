from fastapi import APIRouter, Depends, Query
from decimal import Decimal
from typing import List
from lendcircle.core.config import settings
from lendcircle.core.exceptions import LendingError, ValidationError, to_http_exception
from lendcircle.modules.currency.cache import ExchangeRateCache, apply_rate, get_rate_cache
from lendcircle.modules.currency.rates import format_currency, get_currency_name, get_currency_symbol
from lendcircle.modules.currency.schemas import CurrencyInfo, ConversionResponse

router = APIRouter(prefix="/api/v1/currency", tags=["currency"])


@router.get("/supported", response_model=List[CurrencyInfo])
async def list_supported_currencies():
    return [
        CurrencyInfo(code=code, symbol=get_currency_symbol(code), name=get_currency_name(code))
        for code in settings.supported_currencies_list
    ]


@router.get("/convert", response_model=ConversionResponse)
async def convert_amount(
    amount: Decimal = Query(..., ge=0),
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    cache: ExchangeRateCache = Depends(get_rate_cache)
):
    """
    Convert an amount between two supported currencies.

    Served from cached rates; falls back to static rates when the provider is down.
    """
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    try:
        for code in (from_currency, to_currency):
            if code not in settings.supported_currencies_list:
                raise ValidationError(f"Unsupported currency: {code}")
        rate = await cache.get_rate(from_currency, to_currency)
        converted = apply_rate(amount, rate)
    except LendingError as e:
        raise to_http_exception(e)

    return ConversionResponse(
        amount=amount,
        from_currency=from_currency,
        to_currency=to_currency,
        rate=rate,
        converted_amount=converted,
        formatted=format_currency(converted, to_currency)
    )
