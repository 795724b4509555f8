# tests/test_partners.py — Partner management
import pytest
import pytest_asyncio
from httpx import AsyncClient

import partners
from config import CdnScope
from models import Partner, PartnerType
from tests.conftest import login_active, panel, reload


def _partner(**overrides):
    data = {
        "id": "acme",
        "name": "Acme Bots",
        "image_type": "png",
        "short": "Bots for everything",
        "links": [{"name": "Website", "value": "https://acme.test"}],
        "type": "bot",
        "user_id": "100",
    }
    data.update(overrides)
    return data


@pytest_asyncio.fixture
async def partner_type(db_session):
    ptype = PartnerType(id="bot", name="Bot", short="Bot partners", icon="mdi:robot")
    db_session.add(ptype)
    await db_session.commit()
    return ptype


@pytest.fixture
def avatar(cdn_root):
    (cdn_root / "partners").mkdir()
    path = cdn_root / "partners" / "acme.png"
    path.write_bytes(b"\x89PNG fake")
    return path


@pytest.mark.asyncio
class TestPartners:
    async def test_requires_partner_capability(self, client: AsyncClient, staff_user, frozen_clock):
        token = await login_active(client, staff_user)
        res = await panel(client, "GetPartnerList", login_token=token)
        assert res.status_code == 403

    async def test_add_list_delete(self, client: AsyncClient, admin_user, plain_user, partner_type, avatar,
                                   db_session, frozen_clock):
        token = await login_active(client, admin_user)

        res = await panel(client, "AddPartner", login_token=token, partner=_partner())
        assert res.status_code == 204, res.text

        res = await panel(client, "GetPartnerList", login_token=token)
        data = res.json()
        assert [p["id"] for p in data["partners"]] == ["acme"]
        assert data["partners"][0]["links"] == [{"name": "Website", "value": "https://acme.test"}]
        assert [t["id"] for t in data["partner_types"]] == ["bot"]

        res = await panel(client, "AddPartner", login_token=token, partner=_partner())
        assert res.status_code == 409

        res = await panel(client, "DeletePartner", login_token=token, partner_id="acme")
        assert res.status_code == 204
        assert not avatar.exists()
        assert await reload(db_session, Partner, "acme") is None

        res = await panel(client, "DeletePartner", login_token=token, partner_id="acme")
        assert res.status_code == 404

    @pytest.mark.parametrize("overrides,detail", [
        ({"type": "nope"}, "Partner type does not exist"),
        ({"id": "ghost"}, "Image does not exist"),
        ({"links": []}, "Links cannot be empty"),
        ({"links": [{"name": "Site", "value": "http://acme.test"}]}, "Link URL must start with https://"),
        ({"user_id": "999"}, "User does not exist"),
    ])
    async def test_add_rejections(self, client: AsyncClient, admin_user, plain_user, partner_type, avatar,
                                  frozen_clock, overrides, detail):
        token = await login_active(client, admin_user)
        res = await panel(client, "AddPartner", login_token=token, partner=_partner(**overrides))
        assert res.status_code == 400
        assert res.json()["detail"] == detail

    async def test_empty_avatar(self, client: AsyncClient, admin_user, plain_user, partner_type, avatar,
                                frozen_clock):
        avatar.write_bytes(b"")
        token = await login_active(client, admin_user)
        res = await panel(client, "AddPartner", login_token=token, partner=_partner())
        assert res.status_code == 400
        assert res.json()["detail"] == "Image is empty"

    async def test_invalid_id_pattern(self, client: AsyncClient, admin_user, frozen_clock):
        token = await login_active(client, admin_user)
        res = await panel(client, "AddPartner", login_token=token, partner=_partner(id="../evil"))
        assert res.status_code == 422

    async def test_avatar_kept_when_delete_fails(self, db_session, plain_user, partner_type, avatar, cdn_root,
                                                 monkeypatch):
        db_session.add(Partner(
            id="acme", name="Acme Bots", image_type="png", short="Bots for everything",
            links=[], type="bot", user_id=plain_user.user_id,
        ))
        await db_session.commit()

        async def failing_commit():
            raise RuntimeError("database went away")

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            await partners.delete_partner(db_session, {"ibl@main": CdnScope(path=str(cdn_root))}, "acme")
        assert avatar.exists()
