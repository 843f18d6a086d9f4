"""
Lead Matcher - links synced orders to CRM leads

Two separate algorithms:
- match_lead: automatic, exact email then exact phone, used by the sync
- score_lead / suggest_leads: looser weighted scoring for the manual review panel
"""
import re
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Iterable, List

_NON_DIGITS = re.compile(r"\D")


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Digits only; None when nothing is left"""
    if not phone:
        return None
    return _NON_DIGITS.sub("", phone) or None


@dataclass
class LeadIndex:
    """Per-run lookup tables for one tenant's leads"""
    by_email: Dict[str, Any] = field(default_factory=dict)
    by_phone: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, leads: Iterable[Any]) -> "LeadIndex":
        """Leads are objects (or mappings) with id, email and phone. First lead wins on duplicates."""
        index = cls()
        for lead in leads:
            lead_id = _field(lead, "id")
            email = normalize_email(_field(lead, "email"))
            phone = normalize_phone(_field(lead, "phone"))
            if email:
                index.by_email.setdefault(email, lead_id)
            if phone:
                index.by_phone.setdefault(phone, lead_id)
        return index

    def __len__(self) -> int:
        return len(set(self.by_email.values()) | set(self.by_phone.values()))


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def match_lead(order: Any, index: LeadIndex) -> Optional[Any]:
    """
    Exact case-insensitive email first; digits-only phone only when email did not match.
    """
    email = normalize_email(_field(order, "customer_email"))
    if email:
        lead_id = index.by_email.get(email)
        if lead_id is not None:
            return lead_id

    phone = normalize_phone(_field(order, "customer_phone"))
    if phone:
        return index.by_phone.get(phone)

    return None


# ========== Manual matching suggestions ==========

EMAIL_SCORE = 100
PHONE_SCORE = 80
PARTIAL_PHONE_SCORE = 40
FULL_NAME_SCORE = 60
PARTIAL_NAME_SCORE = 30


def score_lead(
    lead: Any,
    customer_name: Optional[str],
    customer_email: Optional[str],
    customer_phone: Optional[str],
) -> int:
    """Weighted similarity between an order's customer and a lead; for human review only"""
    score = 0

    order_email = normalize_email(customer_email)
    lead_email = normalize_email(_field(lead, "email"))
    if order_email and lead_email and order_email == lead_email:
        score += EMAIL_SCORE

    order_phone = normalize_phone(customer_phone)
    lead_phone = normalize_phone(_field(lead, "phone"))
    if order_phone and lead_phone:
        if order_phone == lead_phone:
            score += PHONE_SCORE
        elif order_phone in lead_phone or lead_phone in order_phone:
            score += PARTIAL_PHONE_SCORE

    if customer_name:
        order_name = customer_name.strip().lower()
        first_name = (_field(lead, "first_name") or "").strip().lower()
        last_name = (_field(lead, "last_name") or "").strip().lower()
        full_name = f"{first_name} {last_name}".strip()

        if full_name and full_name == order_name:
            score += FULL_NAME_SCORE
        elif first_name and first_name in order_name:
            score += PARTIAL_NAME_SCORE
        elif last_name and last_name in order_name:
            score += PARTIAL_NAME_SCORE

    return score


def match_level(score: int) -> str:
    if score > 80:
        return "High"
    if score > 40:
        return "Medium"
    return "Low"


def suggest_leads(
    leads: Iterable[Any],
    customer_name: Optional[str],
    customer_email: Optional[str],
    customer_phone: Optional[str],
    limit: int = 5,
) -> List[Dict[str, Any]]:
    """Top scoring leads (score > 0), best first"""
    scored = []
    for lead in leads:
        score = score_lead(lead, customer_name, customer_email, customer_phone)
        if score > 0:
            scored.append({"lead": lead, "score": score, "match_level": match_level(score)})

    scored.sort(key=lambda s: s["score"], reverse=True)
    return scored[:limit]
