"""Unit tests for the client repository."""

from sqlalchemy.engine import Engine

from client_reports.models import Client
from client_reports.repository import ClientRepository


def test_save_get_and_update(engine: Engine) -> None:
    repo = ClientRepository(engine)
    repo.save(Client(id="c1", name="Acme", domains=["Acme.com"], emails=[], user_id="me@firm.com"))

    loaded = repo.get("c1")
    assert loaded is not None
    assert loaded.domains == ["acme.com"]

    repo.save(Client(id="c1", name="Acme Corp", domains=["acme.com", "acme.io"], user_id="me@firm.com"))

    loaded = repo.get("c1", "me@firm.com")
    assert loaded is not None
    assert loaded.name == "Acme Corp"
    assert loaded.domains == ["acme.com", "acme.io"]


def test_visibility_by_owner(engine: Engine) -> None:
    repo = ClientRepository(engine)
    repo.save(Client(id="mine", name="Beta", user_id="me@firm.com"))
    repo.save(Client(id="theirs", name="Gamma", user_id="other@firm.com"))
    repo.save(Client(id="shared", name="Alpha"))

    assert repo.get("theirs", "me@firm.com") is None
    assert [c.id for c in repo.list_for_user("me@firm.com")] == ["shared", "mine"]
    assert len(repo.list_for_user()) == 3
