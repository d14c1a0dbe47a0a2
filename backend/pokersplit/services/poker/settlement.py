"""Settlement engine: net results and debt-clearing payments.

Pure functions over a snapshot of participants. Nothing here touches the
database, the request context or any module-level state, so the same input
always yields the same output and callers may recompute freely whenever a
round changes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

# One cent. Differences below this are treated as zero.
EPSILON = 0.01


class SettlementError(ValueError):
    """Base class for settlement input errors."""


class InvalidAmountError(SettlementError):
    pass


class PoolMismatchError(SettlementError):
    """Total cash-out does not match total investment."""

    def __init__(self, total_investment: float, total_cash_out: float):
        self.total_investment = total_investment
        self.total_cash_out = total_cash_out
        super().__init__(
            f"Total (${total_cash_out:.2f}) doesn't match pot (${total_investment:.2f})"
        )

    @property
    def difference(self) -> float:
        return self.total_cash_out - self.total_investment


def _check_amount(label: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidAmountError(f'{label} must be a number, got {value!r}')
    if math.isnan(value) or math.isinf(value):
        raise InvalidAmountError(f'{label} must be finite')
    if value < 0:
        raise InvalidAmountError(f'{label} must not be negative')


@dataclass(frozen=True)
class Participant:
    name: str
    investment: float
    cash_out: Optional[float] = None
    settled_early: bool = False

    def __post_init__(self):
        _check_amount(f'investment for {self.name}', self.investment)
        if self.cash_out is not None:
            _check_amount(f'cash-out for {self.name}', self.cash_out)
        elif self.settled_early:
            raise InvalidAmountError(f'{self.name} settled early without a cash-out amount')

    @classmethod
    def from_buy_ins(cls, name: str, buy_ins: int, buy_in_amount: float,
                     cash_out: Optional[float] = None, settled_early: bool = False) -> 'Participant':
        _check_amount(f'buy-ins for {name}', buy_ins)
        _check_amount('buy-in amount', buy_in_amount)
        return cls(name, buy_ins * buy_in_amount, cash_out, settled_early)

    @property
    def wins(self) -> float:
        # An unset cash-out counts as zero
        return self.cash_out if self.cash_out is not None else 0.0

    @property
    def net(self) -> float:
        return self.wins - self.investment


@dataclass(frozen=True)
class ParticipantResult:
    name: str
    invested: float
    wins: float
    net: float

    def to_dict(self):
        return {
            'name': self.name,
            'invested': round(self.invested, 2),
            'wins': round(self.wins, 2),
            'net': round(self.net, 2),
        }


@dataclass(frozen=True)
class Payment:
    payer: str
    payee: str
    amount: float

    def to_dict(self):
        return {'from': self.payer, 'to': self.payee, 'amount': round(self.amount, 2)}


@dataclass(frozen=True)
class Settlement:
    results: List[ParticipantResult]
    payments: List[Payment]

    @property
    def everyone_even(self) -> bool:
        return not self.payments

    def to_dict(self):
        return {
            'results': [r.to_dict() for r in self.results],
            'payments': [p.to_dict() for p in self.payments],
        }


def compute_net(participants: Iterable[Participant]) -> List[ParticipantResult]:
    """Return each participant's invested, wins and net, in input order."""
    return [
        ParticipantResult(name=p.name, invested=p.investment, wins=p.wins, net=p.net)
        for p in participants
    ]


def compute_settlements(participants: Sequence) -> List[Payment]:
    """Greedy debt clearing.

    Accepts ``Participant`` records or ``compute_net`` results; only ``name``
    and ``net`` are read. Debtors and creditors are each sorted largest
    first (ties keep input order) and the head of each queue is paired
    until one queue runs out. Residual imbalance, which only happens when
    the pool was not validated, is dropped.
    """
    debtors = [[p.name, -p.net] for p in participants if -p.net >= EPSILON]
    creditors = [[p.name, p.net] for p in participants if p.net >= EPSILON]

    debtors.sort(key=lambda entry: entry[1], reverse=True)
    creditors.sort(key=lambda entry: entry[1], reverse=True)

    payments = []
    i = 0
    j = 0
    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        amount = min(debtor[1], creditor[1])
        if amount > EPSILON:
            payments.append(Payment(payer=debtor[0], payee=creditor[0], amount=amount))

        debtor[1] -= amount
        creditor[1] -= amount

        if debtor[1] < EPSILON:
            i += 1
        if creditor[1] < EPSILON:
            j += 1

    residual = sum(d[1] for d in debtors[i:]) - sum(c[1] for c in creditors[j:])
    if abs(residual) >= EPSILON:
        logger.warning('[settle-residual] dropped unbalanced amount %.2f', residual)

    return payments


def settle(participants: Sequence[Participant]) -> Settlement:
    results = compute_net(participants)
    return Settlement(results=results, payments=compute_settlements(results))


def pool_difference(participants: Iterable[Participant]) -> float:
    """Total cash-out minus total investment."""
    participants = list(participants)
    total_in = sum(p.investment for p in participants)
    total_out = sum(p.wins for p in participants)
    return total_out - total_in


def check_pool(participants: Iterable[Participant]) -> None:
    """Raise PoolMismatchError unless cash-outs add up to the pot.

    Callers run this before finalizing a round; ``compute_settlements``
    never does.
    """
    participants = list(participants)
    total_in = sum(p.investment for p in participants)
    total_out = sum(p.wins for p in participants)
    if abs(total_out - total_in) >= EPSILON:
        raise PoolMismatchError(total_in, total_out)
