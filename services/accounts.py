from typing import Optional

from loguru import logger

from db.models import Account
from db.repository import LeadRepository

FREE_EMAIL_DOMAINS = frozenset({
    "gmail.com",
    "yahoo.com",
    "hotmail.com",
    "outlook.com",
    "aol.com",
    "icloud.com",
    "mail.com",
    "protonmail.com",
    "live.com",
    "msn.com",
})

# Fuzzy matching needs a name at least this specific
MIN_FUZZY_WORDS = 2
MIN_FUZZY_CHARS = 8


def extract_domain(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


def is_free_email_domain(domain: Optional[str]) -> bool:
    return (domain or "").strip().lower() in FREE_EMAIL_DOMAINS


def is_business_email(email: Optional[str]) -> bool:
    domain = extract_domain(email)
    return bool(domain) and not is_free_email_domain(domain)


class AccountMatcher:
    """Resolves a lead's firm to an existing account.

    Priority, first hit wins:
      1. exact domain (case-insensitive), skipped for free-mail domains
      2. exact firm name (case-insensitive)
      3. firm name as a prefix of an account name, only for names with at
         least two words or eight characters. Substring matching is never used:
         "Sun" must not pick up "Sunshine Capital".
    """

    def __init__(self, repo: LeadRepository):
        self.repo = repo

    def resolve(self, firm_name: Optional[str], domain: Optional[str] = None) -> Optional[Account]:
        if domain and not is_free_email_domain(domain):
            account = self.repo.find_account_by_domain(domain)
            if account:
                logger.info(f"Account matched by domain {domain}: {account.firm_name}")
                return account

        name = (firm_name or "").strip()
        if not name:
            return None

        account = self.repo.find_account_by_name(name)
        if account:
            logger.info(f"Account matched by exact name: {account.firm_name}")
            return account

        if len(name.split()) >= MIN_FUZZY_WORDS or len(name) >= MIN_FUZZY_CHARS:
            account = self.repo.find_account_by_name_prefix(name)
            if account:
                logger.info(f"Account matched by name prefix '{name}': {account.firm_name}")
                return account

        return None
