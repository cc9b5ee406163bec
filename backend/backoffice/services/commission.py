"""
Расчёт комиссии перевода по реальной сумме, введённой аудитором.

commission = max(0, declared - round_half_up(real_eur * rate))
commission >= threshold -> validated, иначе rejected.

Функции чистые: курс и порог приходят аргументами (см. RateProvider),
запись статуса в транзакцию делает вызывающий код.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Protocol, Union

from backoffice.core.exceptions import InvalidInputError
from backoffice.models import TransactionStatus

Number = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class CommissionDecision:
    real_amount_settlement: int
    commission: int
    status: TransactionStatus
    rejection_reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == TransactionStatus.VALIDATED


def _to_decimal(value: Number, field: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        d = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"{field} : valeur numérique invalide")
    if not d.is_finite():
        raise InvalidInputError(f"{field} : valeur numérique invalide")
    return d


def convert_eur(real_amount_eur: Number, rate: Number) -> int:
    """EUR -> валюта расчёта. rate в минимальных единицах за 1 EUR, округление half-up."""
    product = _to_decimal(real_amount_eur, "real_amount_eur") * _to_decimal(rate, "rate")
    return int(product.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def evaluate_commission(
    declared_amount: int,
    real_amount_eur: Number,
    rate: Number,
    threshold: int,
) -> CommissionDecision:
    real = _to_decimal(real_amount_eur, "real_amount_eur")
    rate_d = _to_decimal(rate, "rate")
    if real <= 0:
        raise InvalidInputError("Le montant réel doit être un nombre positif")
    if rate_d <= 0:
        raise InvalidInputError("Le taux de change doit être positif")
    if declared_amount < 0:
        raise InvalidInputError("Le montant déclaré ne peut pas être négatif")
    if threshold < 0:
        raise InvalidInputError("Le seuil de commission ne peut pas être négatif")

    converted = convert_eur(real, rate_d)
    commission = max(0, int(declared_amount) - converted)
    if commission >= threshold:
        return CommissionDecision(converted, commission, TransactionStatus.VALIDATED)
    reason = (
        f"Commission {commission} inférieure au minimum requis {threshold}"
    )
    return CommissionDecision(converted, commission, TransactionStatus.REJECTED, reason)


# Число знаков минимальной единицы: суммы транзакций хранятся в этих единицах
MINOR_UNIT_EXPONENTS = {"XAF": 0, "EUR": 2}
SUPPORTED_CURRENCIES = frozenset(MINOR_UNIT_EXPONENTS)


def minor_units_per_unit(currency: str) -> int:
    exponent = MINOR_UNIT_EXPONENTS.get((currency or "").upper())
    if exponent is None:
        raise InvalidInputError(f"Devise non prise en charge : {currency}")
    return 10 ** exponent


class RateProvider(Protocol):
    def eur_rate(self, currency: str) -> Decimal:
        """Сколько минимальных единиц currency за 1 EUR."""

    def commission_threshold(self, currency: str) -> int:
        """Минимальная комиссия в минимальных единицах currency."""


class StaticRateProvider:
    """
    Фиксированные курсы {валюта: единиц валюты за 1 EUR}, порог задан в threshold_currency.
    Наружу курс и порог отдаются в минимальных единицах валюты транзакции.
    """

    def __init__(self, rates: dict, threshold: int, threshold_currency: str = "XAF"):
        self._rates = {k.upper(): Decimal(str(v)) for k, v in rates.items()}
        self._rates.setdefault("EUR", Decimal("1"))
        self._threshold = int(threshold)
        self._threshold_currency = threshold_currency.upper()

    def eur_rate(self, currency: str) -> Decimal:
        code = (currency or "").upper()
        rate = self._rates.get(code)
        if rate is None:
            raise InvalidInputError(f"Aucun taux configuré pour la devise {currency}")
        return rate * minor_units_per_unit(code)

    def commission_threshold(self, currency: str) -> int:
        code = (currency or "").upper()
        if code == self._threshold_currency:
            return self._threshold
        converted = Decimal(self._threshold) * self.eur_rate(code) / self.eur_rate(self._threshold_currency)
        return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def evaluate_with_provider(
    declared_amount: int, currency: str, real_amount_eur: Number, rates: RateProvider
) -> CommissionDecision:
    return evaluate_commission(
        declared_amount,
        real_amount_eur,
        rates.eur_rate(currency),
        rates.commission_threshold(currency),
    )
