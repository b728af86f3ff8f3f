"""
Field Validators

Pure, stateless format checks. Every validator returns ``True`` when the
value is acceptable or a human-readable reason string otherwise; callers
treat anything other than ``True`` as a rejection carrying that message.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple, Union

from .models import FundingSourceType
from .money import format_amount, format_display


ValidationResult = Union[bool, str]

DEFAULT_MAX_AMOUNT = Decimal("10000.00")


# Amounts

_MULTIPLE_LEADING_ZEROS = re.compile(r"^0{2,}(?=[0-9.])")
_LEADING_ZEROS = re.compile(r"^0+(?=[0-9])")
_AMOUNT_FORMAT = re.compile(r"^[0-9]+(?:\.[0-9]{0,2})?$")


def normalize_amount(value: Optional[str]) -> str:
    """
    Strip redundant leading zeros, keeping the single zero before a decimal
    point: "000100.00" -> "100.00", "0.50" -> "0.50".
    """
    if not value:
        return ""
    return _LEADING_ZEROS.sub("", value.strip())


def validate_amount(value: Optional[str],
                    max_amount: Union[Decimal, int, str] = DEFAULT_MAX_AMOUNT) -> Tuple[ValidationResult, str]:
    """
    Validate a deposit amount string.

    Returns:
        (True | reason, normalized) where normalized is the two-decimal form
        when valid
    """
    if value is None:
        return "Amount is required", ""
    trimmed = str(value).strip()
    if not trimmed:
        return "Amount is required", ""

    if _MULTIPLE_LEADING_ZEROS.match(trimmed):
        return ("Amount cannot have multiple leading zeros. "
                "Use format like 100.00 instead of 000100.00"), normalize_amount(trimmed)

    if not _AMOUNT_FORMAT.match(trimmed):
        return "Invalid amount format", trimmed

    try:
        amount = Decimal(trimmed)
    except InvalidOperation:
        return "Amount must be a valid number", trimmed

    if amount.is_nan():
        return "Amount must be a valid number", trimmed
    if amount <= 0:
        return "Amount must be greater than $0.00", trimmed

    ceiling = Decimal(str(max_amount))
    if amount > ceiling:
        return f"Amount cannot exceed {format_display(ceiling)}", trimmed

    return True, format_amount(amount)


# Card numbers

# (network, low prefix, high prefix) with prefixes compared at equal length
_CARD_RANGES = (
    ("visa", "4", "4"),
    ("mastercard", "51", "55"),
    ("mastercard", "2221", "2720"),
    ("amex", "34", "34"),
    ("amex", "37", "37"),
    ("discover", "6011", "6011"),
    ("discover", "622126", "622925"),
    ("discover", "644", "649"),
    ("discover", "65", "65"),
    ("diners", "300", "305"),
    ("diners", "3095", "3095"),
    ("diners", "36", "36"),
    ("diners", "38", "39"),
    ("jcb", "3528", "3589"),
)


def _clean_card_number(value: str) -> str:
    return re.sub(r"[\s-]", "", value)


def detect_card_network(value: Optional[str]) -> Optional[str]:
    """Name the card network a number belongs to, or None"""
    if not value:
        return None
    digits = _clean_card_number(value)
    if not (digits.isascii() and digits.isdigit()):
        return None
    for network, low, high in _CARD_RANGES:
        prefix = digits[:len(low)]
        if len(prefix) == len(low) and low <= prefix <= high:
            return network
    return None


def luhn_check(digits: str) -> bool:
    """Mod-10 checksum over a string of digits"""
    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_card_number(value: Optional[str]) -> ValidationResult:
    if not value:
        return "Card number is required"

    cleaned = _clean_card_number(value)
    if not re.fullmatch(r"[0-9]+", cleaned):
        return "Card number must contain only digits"
    if len(cleaned) < 13 or len(cleaned) > 19:
        return "Card number must be between 13 and 19 digits"
    if detect_card_network(cleaned) is None:
        return "Invalid card number - unsupported card type"
    if not luhn_check(cleaned):
        return "Invalid card number - checksum failed"
    return True


def validate_routing_number(value: Optional[str]) -> ValidationResult:
    if not value:
        return "Routing number is required"
    if not re.fullmatch(r"[0-9]{9}", value.strip()):
        return "Routing number must be 9 digits"
    return True


def validate_funding_source(source_type: Optional[str], account_number: Optional[str],
                            routing_number: Optional[str] = None) -> ValidationResult:
    """Check the card or bank details a deposit is drawn from"""
    if source_type == FundingSourceType.CARD.value:
        return validate_card_number(account_number)
    if source_type == FundingSourceType.BANK.value:
        if not account_number or not account_number.strip():
            return "Account number is required"
        if not re.fullmatch(r"[0-9]+", account_number.strip()):
            return "Account number must contain only digits"
        return validate_routing_number(routing_number)
    return "Funding source type must be card or bank"


# Phone numbers

_PHONE_FORMATTING = re.compile(r"[\s\-().]")
_E164 = re.compile(r"^\+?[1-9][0-9]{4,14}$")


def validate_phone_number(value: Optional[str]) -> ValidationResult:
    if not value:
        return "Phone number is required"

    cleaned = _PHONE_FORMATTING.sub("", value)
    if not cleaned:
        return "Phone number is required"

    if not _E164.match(cleaned):
        if cleaned.startswith("+") and len(cleaned) < 6:
            return "Phone number with country code must be at least 6 digits (e.g., +14155552671)"
        if cleaned.startswith("+") and len(cleaned) > 16:
            return "Phone number with country code must be at most 16 characters (including +)"
        if not cleaned.startswith("+") and len(cleaned) < 10:
            return "Phone number must be at least 10 digits"
        if not cleaned.startswith("+") and len(cleaned) > 15:
            return "Phone number must be at most 15 digits"
        if cleaned.startswith("0"):
            return "Phone number cannot start with 0 (use country code format, e.g., +1...)"
        if not re.fullmatch(r"\+?[0-9]+", cleaned):
            return "Phone number must contain only digits and optional + prefix"
        return "Invalid phone number format. Use international format (e.g., +14155552671 or 14155552671)"

    digits = cleaned.lstrip("+")
    if len(digits) < 10:
        return "Phone number must be at least 10 digits"
    return True


def normalize_phone_number(value: str) -> str:
    """E.164 with a leading +; ten bare digits are taken as a US number"""
    cleaned = _PHONE_FORMATTING.sub("", value)
    if cleaned.startswith("+"):
        return cleaned
    if re.fullmatch(r"[0-9]{10}", cleaned):
        return f"+1{cleaned}"
    return f"+{cleaned}"


# Passwords

COMMON_PASSWORDS = frozenset({
    "password", "password123", "12345678", "qwerty", "abc123", "monkey",
    "1234567", "letmein", "trustno1", "dragon", "baseball", "iloveyou",
    "master", "sunshine", "ashley", "bailey", "passw0rd", "shadow",
    "123123", "654321", "superman", "qazwsx", "michael", "football",
})

SEQUENTIAL_PATTERNS = ("abcdefgh", "qwertyui", "asdfghjk", "zxcvbnm", "12345678", "87654321")

_SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


def validate_password(value: Optional[str], min_length: int = 8) -> ValidationResult:
    if not value:
        return "Password is required"
    if len(value) < min_length:
        return f"Password must be at least {min_length} characters"
    if not re.search(r"[A-Z]", value):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", value):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", value):
        return "Password must contain at least one number"
    if not _SPECIAL_CHARACTERS.search(value):
        return "Password must contain at least one special character"

    lowered = value.lower()
    if lowered in COMMON_PASSWORDS:
        return "Password is too common - please choose a more unique password"
    if any(pattern in lowered for pattern in SEQUENTIAL_PATTERNS):
        return "Password contains sequential characters - please choose a more secure password"
    if re.search(r"(.)\1{3,}", value):
        return "Password contains too many repeated characters"
    return True


# Dates of birth

MINIMUM_AGE = 18


def validate_date_of_birth(value: Optional[str], today: Optional[date] = None) -> ValidationResult:
    if not value:
        return "Date of birth is required"
    if not re.fullmatch(r"[0-9]{4}-[0-9]{2}-[0-9]{2}", value):
        return "Invalid date format"

    year, month, day = (int(part) for part in value.split("-"))
    try:
        born = date(year, month, day)
    except ValueError:
        return "Invalid date"

    today = today or date.today()
    if born > today:
        return "Date of birth cannot be in the future"

    age = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
    if age < MINIMUM_AGE:
        return f"You must be at least {MINIMUM_AGE} years old"
    return True


# State codes

VALID_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC",
})


def normalize_state_code(value: str) -> str:
    return value.strip().upper()


def validate_state_code(value: Optional[str]) -> ValidationResult:
    if not value:
        return "State code is required"
    normalized = normalize_state_code(value)
    if len(normalized) != 2:
        return "State code must be exactly 2 letters"
    if not re.fullmatch(r"[A-Z]{2}", normalized):
        return "State code must contain only letters"
    if normalized not in VALID_STATE_CODES:
        return f'"{normalized}" is not a valid US state code'
    return True


# Email

COMMON_EMAIL_TYPOS = {
    ".con": ".com",
    ".c0m": ".com",
    ".cm": ".com",
    ".om": ".com",
    ".cpm": ".com",
    ".coom": ".com",
    ".comm": ".com",
    ".orgn": ".org",
    ".ogr": ".org",
}

_EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def validate_email(value: Optional[str]) -> ValidationResult:
    if not value or not value.strip():
        return "Email is required"
    email = value.strip()

    if email.startswith("@") or email.endswith("@"):
        return "Invalid email address format"
    if ".." in email:
        return "Invalid email address format (cannot contain consecutive dots)"
    if email.startswith(".") or email.endswith("."):
        return "Invalid email address format (cannot start or end with a dot)"

    for typo, correct in COMMON_EMAIL_TYPOS.items():
        if email.lower().endswith(typo):
            return f'Did you mean "{email[:-len(typo)]}{correct}"?'

    if not _EMAIL_PATTERN.match(email):
        return "Invalid email address format"

    local, domain = email.split("@")
    if len(local) > 64:
        return "Invalid email address format (local part must be 1-64 characters)"
    if local.startswith(".") or local.endswith("."):
        return "Invalid email address format (local part cannot start or end with a dot)"
    if len(domain) > 255:
        return "Invalid email address format (domain must be 1-255 characters)"
    if "." not in domain:
        return "Invalid email address format (domain must include a top-level domain)"
    if len(domain.rsplit(".", 1)[-1]) < 2:
        return "Invalid email address format (top-level domain must be at least 2 characters)"
    return True


# Identity fields

def validate_ssn(value: Optional[str]) -> ValidationResult:
    if not value:
        return "SSN is required"
    if not re.fullmatch(r"[0-9]{9}", value):
        return "SSN must be exactly 9 digits"
    return True


def validate_zip_code(value: Optional[str]) -> ValidationResult:
    if not value:
        return "ZIP code is required"
    if not re.fullmatch(r"[0-9]{5}", value):
        return "ZIP code must be 5 digits"
    return True


def validate_required(value: Optional[str], field_name: str) -> ValidationResult:
    if not value or not value.strip():
        return f"{field_name} is required"
    return True
