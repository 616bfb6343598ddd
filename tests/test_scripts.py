"""
Tests for the command line scripts.
"""
import pytest

from enrichment.services.account_type import AccountType
from enrichment.services.person_entity import EntityFilterRule, Person
from scripts import reclassify_accounts, resolve_emails

pytestmark = pytest.mark.unit

TENANT = "tenant-a"


class TestResolveEmails:
    """Tests for scripts/resolve_emails.py."""

    def test_parse_target(self):
        assert resolve_emails.parse_target("jsmith@acme.com:John Smith") == ("jsmith@acme.com", "John Smith")
        assert resolve_emails.parse_target(" jane@acme.com ") == ("jane@acme.com", "")

    def test_creates_and_matches(self, temp_store, capsys):
        code = resolve_emails.main(["--tenant", TENANT, "jsmith@acme.com:John Smith"], store=temp_store)
        assert code == 0
        assert "NEW" in capsys.readouterr().out

        resolve_emails.main(["--tenant", TENANT, "JSmith@acme.com"], store=temp_store)
        assert "EXACT_MATCH" in capsys.readouterr().out
        assert temp_store.get_entity_stats(TENANT).total_people == 1

    def test_dry_run_writes_nothing(self, temp_store, capsys):
        code = resolve_emails.main(["--tenant", TENANT, "--dry-run", "jane@acme.com"], store=temp_store)
        assert code == 0
        assert "MISSING" in capsys.readouterr().out
        assert temp_store.get_entity_stats(TENANT).total_people == 0

    def test_blocked_and_invalid(self, temp_store, capsys):
        temp_store.create_filter_rule(EntityFilterRule(tenant_id=TENANT, email_pattern="%@spam.com"))
        code = resolve_emails.main(["--tenant", TENANT, "promo@spam.com", "broken"], store=temp_store)
        out = capsys.readouterr().out
        assert "BLOCKED" in out
        assert "ERROR" in out
        assert code == 1


class TestReclassifyAccounts:
    """Tests for scripts/reclassify_accounts.py."""

    def test_reclassifies_stale_types(self, temp_store, capsys):
        bot = temp_store.create_person(Person(TENANT, "Noreply", "noreply@acme.com"))
        person = temp_store.create_person(Person(TENANT, "Jane Doe", "jane@acme.com"))
        temp_store.add_tenant_pattern(TENANT, "ops", "role")
        ops = temp_store.create_person(Person(TENANT, "Ops", "ops@acme.com"))

        assert reclassify_accounts.main(["--tenant", TENANT], store=temp_store) == 0

        assert temp_store.get_person_by_id(TENANT, bot.id).account_type == AccountType.BOT
        assert temp_store.get_person_by_id(TENANT, ops.id).account_type == AccountType.ROLE
        assert temp_store.get_person_by_id(TENANT, person.id).account_type == AccountType.PERSON
        assert "Changed 2 people" in capsys.readouterr().out

    def test_dry_run(self, temp_store, capsys):
        bot = temp_store.create_person(Person(TENANT, "Noreply", "noreply@acme.com"))
        reclassify_accounts.main(["--tenant", TENANT, "--dry-run"], store=temp_store)
        assert temp_store.get_person_by_id(TENANT, bot.id).account_type == AccountType.PERSON
        assert "Would change 1 people" in capsys.readouterr().out

    def test_nothing_to_do(self, temp_store, capsys):
        temp_store.create_person(Person(TENANT, "Jane Doe", "jane@acme.com"))
        assert reclassify_accounts.main(["--tenant", TENANT], store=temp_store) == 0
        assert "All account types are current." in capsys.readouterr().out
