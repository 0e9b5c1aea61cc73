import pytest
from datetime import timedelta
from io import StringIO
from django.core.management import call_command
from apps.ledger.models import Claim


@pytest.mark.django_db
class TestPurgeExpiredClaimsCommand:
    """Tests for manage.py purge_expired_claims"""

    def test_nothing_to_purge(self, make_claim, pasta):
        make_claim({pasta.id: 1})
        out = StringIO()

        call_command('purge_expired_claims', stdout=out)

        assert 'No expired claims' in out.getvalue()
        assert Claim.objects.count() == 1

    def test_dry_run(self, make_claim, pasta):
        make_claim({pasta.id: 1}, expires_in=timedelta(minutes=-1))
        out = StringIO()

        call_command('purge_expired_claims', '--dry-run', stdout=out)

        assert 'Found 1 expired claim(s).' in out.getvalue()
        assert Claim.objects.count() == 1

    def test_purge(self, make_claim, pasta):
        make_claim({pasta.id: 1}, expires_in=timedelta(minutes=-1))
        make_claim({pasta.id: 1})
        out = StringIO()

        call_command('purge_expired_claims', stdout=out)

        assert 'Deleted 1 expired claim(s).' in out.getvalue()
        assert Claim.objects.count() == 1
