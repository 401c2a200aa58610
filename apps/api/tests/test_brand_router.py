from unittest.mock import patch

import pytest
from sqlalchemy.future import select

from models.account import MemberRole
from models.asset import Asset, AssetProductLine, AssetStatus, FunnelStage


@pytest.mark.asyncio
async def test_owner_can_replace_brand_context(api_client, seed_member):
    client, session_maker = api_client
    _, _, headers = await seed_member(session_maker)

    empty = await client.get("/api/brand-context", headers=headers)
    assert empty.status_code == 200
    assert empty.json()["brandContext"]["brand_voice"] == []
    assert empty.json()["productLines"] == []

    update = await client.put(
        "/api/brand-context",
        json={
            "valueProposition": "Close the books faster",
            "brandVoice": ["Direct", "Warm"],
            "targetIndustries": ["Fintech"],
            "playbook": "Lead with time saved.",
        },
        headers=headers,
    )
    assert update.status_code == 200

    fetched = await client.get("/api/brand-context", headers=headers)
    context = fetched.json()["brandContext"]
    assert context["value_proposition"] == "Close the books faster"
    assert context["brand_voice"] == ["Direct", "Warm"]
    assert context["target_industries"] == ["Fintech"]
    assert context["playbook"] == "Lead with time saved."


@pytest.mark.asyncio
async def test_members_cannot_edit_brand_configuration(api_client, seed_member):
    client, session_maker = api_client
    _, account_id, _ = await seed_member(session_maker)
    _, _, member_headers = await seed_member(
        session_maker, email="member@example.com", role=MemberRole.MEMBER, account_id=account_id
    )

    context = await client.put("/api/brand-context", json={"brandVoice": ["Loud"]}, headers=member_headers)
    line = await client.post("/api/product-lines", json={"name": "Analytics"}, headers=member_headers)
    readable = await client.get("/api/brand-context", headers=member_headers)

    assert context.status_code == 403
    assert line.status_code == 403
    assert readable.status_code == 200


@pytest.mark.asyncio
async def test_product_line_lifecycle_unlinks_assets(api_client, seed_member):
    client, session_maker = api_client
    _, account_id, headers = await seed_member(session_maker)

    created = await client.post(
        "/api/product-lines",
        json={"name": "  Analytics Cloud ", "description": "BI suite", "specificIcp": ["Data Lead"]},
        headers=headers,
    )
    assert created.status_code == 200
    line = created.json()["productLine"]
    assert line["name"] == "Analytics Cloud"
    assert line["specific_icp"] == ["Data Lead"]

    listed = await client.get("/api/product-lines", headers=headers)
    assert [p["id"] for p in listed.json()["productLines"]] == [line["id"]]

    async with session_maker() as db:
        asset = Asset(
            account_id=account_id,
            storage_key=f"accounts/{account_id}/uploads/a.pdf",
            storage_url="https://bucket/a.pdf",
            title="A",
            file_type="application/pdf",
            status=AssetStatus.PROCESSED,
            funnel_stage=FunnelStage.TOFU_AWARENESS,
        )
        db.add(asset)
        await db.flush()
        db.add(AssetProductLine(asset_id=asset.id, product_line_id=line["id"]))
        await db.commit()

    deleted = await client.delete(f"/api/product-lines/{line['id']}", headers=headers)
    assert deleted.status_code == 200
    async with session_maker() as db:
        assert (await db.execute(select(AssetProductLine))).scalars().all() == []

    missing = await client.delete(f"/api/product-lines/{line['id']}", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_presigned_upload_is_scoped_and_size_checked(api_client, seed_member):
    client, session_maker = api_client
    _, account_id, headers = await seed_member(session_maker)

    with patch("routers.upload.get_presigned_upload_url", return_value="https://signed.example/put") as sign:
        ok = await client.post(
            "/api/upload/presigned",
            json={"fileName": "Deck.PDF", "fileType": "application/pdf", "fileSize": 1024},
            headers=headers,
        )
        too_big = await client.post(
            "/api/upload/presigned",
            json={"fileName": "movie.mp4", "fileType": "video/mp4", "fileSize": 10 * 1024 * 1024 * 1024},
            headers=headers,
        )
        bad_type = await client.post(
            "/api/upload/presigned",
            json={"fileName": "tool.exe", "fileType": "application/x-msdownload"},
            headers=headers,
        )

    assert ok.status_code == 200
    key = ok.json()["key"]
    assert key.startswith(f"accounts/{account_id}/uploads/")
    assert key.endswith(".pdf")
    assert ok.json()["url"] == "https://signed.example/put"
    sign.assert_called_once()
    assert too_big.status_code == 400
    assert "File too large" in too_big.json()["error"]
    assert bad_type.status_code == 400
    assert bad_type.json()["error"] == "Validation failed"


@pytest.mark.asyncio
async def test_health_and_root_endpoints(api_client):
    client, _ = api_client
    root = await client.get("/")
    live = await client.get("/health/live")
    assert root.json()["name"] == "Asset Organizer API"
    assert live.json() == {"alive": True}
