"""Classification and redaction of service/technical email content.

Everything here is pure: no I/O, no logging, no exceptions for odd input.
Text that matches nothing is returned unchanged.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from client_reports.models import Message
from client_reports.relevance import ClientMatcher, domain_of, normalize_domain

AI_MODEL_PLACEHOLDER = "[AI MODEL]"
PRIVATE_EMAIL_PLACEHOLDER = "[PRIVATE EMAIL]"

SERVICE_EMAIL_KEYWORDS = (
    "noreply",
    "no-reply",
    "donotreply",
    "do-not-reply",
    "automated",
    "system",
    "notification",
    "support",
    "update",
    "security",
)

MODEL_NAMES = (
    "gpt-3.5-turbo",
    "gpt-3.5-turbo-0125",
    "gpt-3.5-turbo-0613",
    "gpt-3.5-turbo-16k",
    "gpt-3.5-turbo-16k-0613",
    "gpt-4",
    "gpt-4-0125",
    "gpt-4-0613",
    "gpt-4-32k",
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-4o-mini",
    "text-embedding-3-small",
    "text-embedding-3-large",
    "claude",
    "claude-instant",
    "claude-2",
)

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)
_SHORT_MONTHS = "May|Jun|Jul|August|September|October|November|December|January|February|March|April"

# Longest names first so that e.g. gpt-4o-mini wins over gpt-4o.
_MODEL_NAME_PATTERN = re.compile(
    r"\b(?:"
    + "|".join(re.escape(name) for name in sorted(MODEL_NAMES, key=len, reverse=True))
    + "|"
    + r"gpt-[0-9.]+-(?:turbo|0125|0613|16k|32k)"
    + r")\b",
    re.IGNORECASE,
)
_MODEL_VERSION_PATTERN = re.compile(r"\bgpt-[0-9.]+-(turbo|0125|0613|16k|32k)\b", re.IGNORECASE)
_MODEL_MENTION_PATTERNS = tuple(
    re.compile(rf"\b{re.escape(name)}\b", re.IGNORECASE) for name in MODEL_NAMES
)

_TECHNICAL_SUBJECT_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bupcoming\s+update\b",
        r"\bmodel\s+chang(e|ing)\b",
        r"\bversion\s+update\b",
        r"\brelease\s+notes\b",
        r"\bupgrad(e|ing)\b",
        r"\bmigrat(e|ion|ing)\b",
        r"\bGPT-.*turbo\b",
        r"\bGPT-[0-9]+\b",
        r"\bapi\s+key\b",
        r"\bsdk\b",
        r"\blibrary\s+update\b",
        r"\bupdate.*(api|model|token|feature)",
        r"\bdeprecation\s+notice\b",
        r"\bproduct\s+announcement\b",
        r"\bterms\s+of\s+service\b",
        r"\bprivacy\s+policy\b",
        r"\bsecurity\s+update\b",
        r"\bmaintenance\s+notice\b",
        r"\bdeveloper\b",
    )
)

_TECHNICAL_BODY_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bapi\s+key\b",
        r"\btoken\s+limit\b",
        r"\bcontext\s+window\b",
        r"\bmodel\s+updat(e|ing)\b",
        r"we('re|'ll|'ve|'d|\s+are|\s+will|\s+have|\s+would)\s+(upgrad|chang|migrat|updat|deprecat|releas)",
        r"\baccess\s+your\s+account\b",
        r"\blogin\s+credential\b",
        r"\bpassword\s+(reset|change)\b",
    )
)

_MONTH_DATE_PATTERN = re.compile(
    rf"\b({_MONTHS})\s+\d{{1,2}}(st|nd|rd|th)?(,?\s+\d{{4}})?\b", re.IGNORECASE
)
_DATE_CONTEXT_WORDS = ("update", "model", "release", "version")

_VERSION_UPDATE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        rf"\b(version|model).*?(chang|updat|upgrad|switch|migrat|releas|replac|deprecat|improv)"
        rf".*?(?:on|by|to).*?({_SHORT_MONTHS}).*?\d{{1,2}}(st|nd|rd|th)?",
        rf"\b(start|begin|commenc).*?({_SHORT_MONTHS}).*?\d{{1,2}}(st|nd|rd|th)?",
        rf"\b(test|explor|us|try).*?(?:before|prior|advance|ahead).*?({_SHORT_MONTHS})"
        rf".*?\d{{1,2}}(st|nd|rd|th)?",
        rf"\b(after|on|by|starting).*?({_SHORT_MONTHS}).*?\d{{1,2}}(st|nd|rd|th)?"
        r".*?(?:no longer|won't|will not|cannot).*?(?:be|accessible|available)",
        r"\b(upcoming|approaching|pending|planned|scheduled|imminent).*?(?:change|update|release|migration)",
    )
)

_MODEL_UPDATE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bupdate to (our|the) (latest|newest|version|model|system)",
        r"\b(we('ll| will)|we have|starting|beginning|effective|we are) (updated?|switching|migrating|changed?|replaced?)",
        r"\b(current|existing|previous) (model|version).*?(point|direct|update|upgrad|chang)",
        r"\bhas (already )?been (deprecat|sunset|retir)",
        r"\b(ensure|maintain|guarantee) (a )?smooth transition",
        r"\bto (ensure|facilitate|enable) (a )?smooth",
        r"\bwe encourage you to test",
        r"\byou may (also )?(want to|wish to) (explore|try|test)",
        r"\breaching out",
        r"\bany questions about",
        r"\bfeel free to (reach|contact)",
    )
)

_TECHNICAL_TERMS = (
    "context window",
    "token limit",
    "token budget",
    "tokens",
    "prompt",
    "temperature",
    "embedding",
    "vector",
    "semantic search",
    "API key",
    "rate limit",
    "throttling",
    "model endpoint",
    "inference",
    "fine-tune",
    "fine-tuning",
    "developer forum",
    "model migration",
)
_TECHNICAL_TERM_PATTERN = re.compile(
    r"\b(?:"
    + "|".join(re.escape(t) for t in sorted(_TECHNICAL_TERMS, key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)

_BULLET_PATTERN = re.compile(
    r"[-•*]\s*(Test|Upgrade|Update|Migrate|Use|Try|Switch|Upcoming|Release|Change|Starting|Beginning)"
    r".*?(model|gpt|turbo|version).*?(\.|$)",
    re.IGNORECASE | re.MULTILINE,
)

_FINAL_REPLACEMENTS = (
    (re.compile(r"\bturbo\b", re.IGNORECASE), "[MODEL]"),
    (re.compile(r"\b\d{4}-\d{2}-\d{2}\b"), "[DATE]"),
    (re.compile(r"OpenAI Developer Forum", re.IGNORECASE), "[TECHNICAL RESOURCE]"),
    (re.compile(r"OpenAI Team", re.IGNORECASE), "[ORGANIZATION]"),
)

_EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def count_model_mentions(text: str) -> int:
    return sum(len(pattern.findall(text)) for pattern in _MODEL_MENTION_PATTERNS)


def is_service_or_technical_email(subject: str = "", from_address: str = "", body: str = "") -> bool:
    """Return True for automated senders or content about products/models rather than the client.

    Args:
        subject: Email subject.
        from_address: Sender address.
        body: Optional plain-text body; enables deeper checks.

    Returns:
        Whether the message looks like a service or technical email.
    """

    subject = subject or ""
    sender = (from_address or "").lower()

    if any(keyword in sender for keyword in SERVICE_EMAIL_KEYWORDS):
        return True
    if any(pattern.search(subject) for pattern in _TECHNICAL_SUBJECT_PATTERNS):
        return True
    lowered_subject = subject.lower()
    if any(name in lowered_subject for name in MODEL_NAMES):
        return True

    if body:
        if _MODEL_VERSION_PATTERN.search(body):
            return True
        if any(pattern.search(body) for pattern in _TECHNICAL_BODY_PATTERNS):
            return True
        if count_model_mentions(body) >= 3:
            return True
    return False


def should_sanitize_email(
    message: Message,
    client_emails: Sequence[str] = (),
    client_domains: Sequence[str] = (),
    user_email: str | None = None,
) -> bool:
    """Whether a message must be sanitized before it can inform a client report.

    True for technical messages and for messages addressed to the user with no
    client recipient.
    """

    if is_service_or_technical_email(message.subject, message.from_address, message.body):
        return True
    if not user_email:
        return False

    matcher = ClientMatcher.build(client_domains, client_emails, user_email)
    recipients = message.recipients()
    return matcher.user_address in recipients and not matcher.is_client_recipient(message)


def sanitize_content(text: str) -> str:
    """Replace model names and model versions with ``[AI MODEL]``.

    Month/day dates are replaced with ``[DATE]`` when the text talks about
    updates, models, releases or versions. Applying this twice gives the same
    result as applying it once.
    """

    if not text:
        return text

    sanitized = _MODEL_NAME_PATTERN.sub(AI_MODEL_PLACEHOLDER, text)
    lowered = sanitized.lower()
    if any(word in lowered for word in _DATE_CONTEXT_WORDS):
        sanitized = _MONTH_DATE_PATTERN.sub("[DATE]", sanitized)
    return sanitized


def _redact_segment(text: str) -> str:
    sanitized = _MODEL_NAME_PATTERN.sub(AI_MODEL_PLACEHOLDER, text)
    for pattern in _VERSION_UPDATE_PATTERNS:
        sanitized = pattern.sub("[UNRELATED TECHNICAL UPDATE]", sanitized)
    for pattern in _MODEL_UPDATE_PATTERNS:
        sanitized = pattern.sub("[UNRELATED INFORMATION]", sanitized)
    sanitized = _TECHNICAL_TERM_PATTERN.sub("[TECHNICAL TERM]", sanitized)
    sanitized = _BULLET_PATTERN.sub("- [UNRELATED TECHNICAL INFORMATION]", sanitized)
    for pattern, replacement in _FINAL_REPLACEMENTS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def _is_client_domain_address(address: str, domains: Sequence[str]) -> bool:
    domain = domain_of(address)
    return any(domain == d or domain.endswith("." + d) for d in domains)


def sanitize_report(
    report: str,
    client_name: str | None = None,
    client_domains: Sequence[str] = (),
) -> str:
    """Redact technical and private content from a generated report.

    Email addresses outside ``client_domains`` become ``[PRIVATE EMAIL]``;
    client-domain addresses and the client's name are left exactly as written.
    Redactions never span across a protected address or name.
    """

    if not report:
        return report

    domains = [d for d in (normalize_domain(x) for x in client_domains) if d]

    protected = _EMAIL_PATTERN.pattern
    if client_name and client_name.strip():
        protected = f"{protected}|{re.escape(client_name.strip())}"
    splitter = re.compile(f"({protected})", re.IGNORECASE)

    parts = splitter.split(report)
    out: list[str] = []
    for index, part in enumerate(parts):
        if index % 2 == 0:
            out.append(_redact_segment(part) if part else part)
        elif "@" in part and _EMAIL_PATTERN.fullmatch(part):
            out.append(part if _is_client_domain_address(part, domains) else PRIVATE_EMAIL_PLACEHOLDER)
        else:
            out.append(part)
    return "".join(out)
