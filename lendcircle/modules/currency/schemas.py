from pydantic import BaseModel
from decimal import Decimal


class CurrencyInfo(BaseModel):
    code: str
    symbol: str
    name: str


class ConversionResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    rate: Decimal
    converted_amount: Decimal
    formatted: str
