"""
Generation credit policy.

Two policies exist. ``lifetime`` compares ``credits_used`` with the role limit
(or ``credits_granted`` when an admin set one, which replaces the role limit).
``daily`` compares the number of generations made on the current local
calendar day with the role limit; the counter resets at local midnight.

One credit is one generation call, whatever number of questions it yields.
"""
from __future__ import annotations
import enum
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from .errors import CreditsExhaustedError
from .models import Role, User

logger = logging.getLogger(__name__)

Limit = Union[int, float]

ROLE_LIMITS: Dict[Role, Limit] = {
	Role.FREE: 2,
	Role.PRO: 10,
	Role.ADMIN: math.inf,
}


class CreditPolicy(str, enum.Enum):
	LIFETIME = "lifetime"
	DAILY = "daily"


def get_generation_limit(role: Role) -> Limit:
	return ROLE_LIMITS[Role(role)]


def get_remaining_credits(role: Role, credits_used: int, credits_granted: Optional[int] = None) -> Limit:
	base_limit = credits_granted if credits_granted is not None else get_generation_limit(role)
	return max(0, base_limit - credits_used)


def has_credits(role: Role, credits_used: int, credits_granted: Optional[int] = None) -> bool:
	return get_remaining_credits(role, credits_used, credits_granted) > 0


def is_pro_or_above(role: Role) -> bool:
	return Role(role) in (Role.PRO, Role.ADMIN)


def is_admin(role: Role) -> bool:
	return Role(role) is Role.ADMIN


def start_of_day(now: datetime) -> datetime:
	return now.replace(hour=0, minute=0, second=0, microsecond=0)


def next_reset_at(now: datetime) -> datetime:
	return start_of_day(now) + timedelta(days=1)


def effective_daily_count(count: int, last_generation_date: Optional[datetime], now: datetime) -> int:
	if last_generation_date is None or last_generation_date.date() < now.date():
		return 0
	return count


def get_remaining_daily(role: Role, count: int, last_generation_date: Optional[datetime], now: datetime) -> Limit:
	current = effective_daily_count(count, last_generation_date, now)
	return max(0, get_generation_limit(role) - current)


def _policy(policy: Union[CreditPolicy, str]) -> CreditPolicy:
	return CreditPolicy(policy)


def remaining_for(user: User, policy: Union[CreditPolicy, str], now: Optional[datetime] = None) -> Limit:
	now = now or datetime.now()
	if _policy(policy) is CreditPolicy.DAILY:
		return get_remaining_daily(user.role, user.daily_generation_count or 0, user.last_generation_date, now)
	return get_remaining_credits(user.role, user.credits_used or 0, user.credits_granted)


def _json_limit(value: Limit) -> Optional[int]:
	return None if math.isinf(value) else int(value)


def generation_status(user: User, policy: Union[CreditPolicy, str], now: Optional[datetime] = None) -> Dict[str, Any]:
	now = now or datetime.now()
	policy = _policy(policy)
	role = Role(user.role)
	if policy is CreditPolicy.DAILY:
		limit = get_generation_limit(role)
		used = effective_daily_count(user.daily_generation_count or 0, user.last_generation_date, now)
	else:
		limit = user.credits_granted if user.credits_granted is not None else get_generation_limit(role)
		used = user.credits_used or 0
	remaining = remaining_for(user, policy, now)
	# JSON has no infinity; unlimited is reported as null plus a flag
	return {
		"policy": policy.value,
		"role": role.value,
		"remaining": _json_limit(remaining),
		"limit": _json_limit(limit),
		"used": used,
		"unlimited": math.isinf(remaining),
		"is_pro": is_pro_or_above(role),
		"can_select_difficulty": is_pro_or_above(role),
		"can_upgrade": role is Role.FREE,
		"resets_at": next_reset_at(now).isoformat() if policy is CreditPolicy.DAILY else None,
	}


def ensure_can_generate(user: User, policy: Union[CreditPolicy, str], now: Optional[datetime] = None) -> None:
	if remaining_for(user, policy, now) <= 0:
		logger.info("Generation rejected for user %s: no credits left (%s policy)", user.id, _policy(policy).value)
		raise CreditsExhaustedError("Generation limit reached")


def consume_generation(user: User, policy: Union[CreditPolicy, str], now: Optional[datetime] = None) -> None:
	"""Charge one generation to ``user``. Mutates the row; the caller commits.

	This is a read-modify-write from the application, not a conditional update,
	so two concurrent generations can both pass ``ensure_can_generate``.
	"""
	now = now or datetime.now()
	if _policy(policy) is CreditPolicy.DAILY:
		current = effective_daily_count(user.daily_generation_count or 0, user.last_generation_date, now)
		user.daily_generation_count = current + 1
		user.last_generation_date = now
	else:
		user.credits_used = (user.credits_used or 0) + 1
