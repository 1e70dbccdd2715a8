import json

import pytest
from sqlalchemy import select

from collecthub.models.collect_record import CollectRecord
from collecthub.models.vod import Vod, VodEpisode, VodSource
from collecthub.schemas.collect_settings import CollectSettingsUpdate
from collecthub.schemas.receive import ReceiveCode
from collecthub.services.receive_vod import build_play_list_from_legacy

from conftest import INTERFACE_PASS, make_source


def vod_body(type_id, **overrides):
    body = {
        "pass": INTERFACE_PASS,
        "vod_name": "Night Harbor",
        "type_id": type_id,
        "vod_pic": "https://img.example.com/1.jpg",
        "vod_remarks": "HD",
        "vod_year": "2021",
        "playList": [
            {
                "playerName": "m3u8",
                "episodes": [
                    {"title": "Ep 1", "url": "https://v.example.com/1.m3u8"},
                    {"title": "Ep 2", "url": "https://v.example.com/2.m3u8"},
                ],
            }
        ],
    }
    body.update(overrides)
    return body


async def _episodes(session_factory, vod_id):
    async with session_factory() as session:
        result = await session.execute(
            select(VodEpisode).where(VodEpisode.vod_id == vod_id).order_by(VodEpisode.episode_num)
        )
        return result.scalars().all()


async def _vod(session_factory, vod_id):
    async with session_factory() as session:
        return await session.get(Vod, vod_id)


class TestCreateAndUpdate:
    async def test_new_record_is_created(self, services, session_factory, categories):
        result = await services.receive_vod.receive(vod_body(categories["movies"]))

        assert result.code == ReceiveCode.CREATED
        vod = await _vod(session_factory, result.vod_id)
        assert vod.type_id == categories["movies"]
        assert vod.class_name == "Movies"
        assert vod.letter == "N"
        assert vod.status == 1

        episodes = await _episodes(session_factory, result.vod_id)
        assert [(e.episode_num, e.url) for e in episodes] == [
            (1, "https://v.example.com/1.m3u8"),
            (2, "https://v.example.com/2.m3u8"),
        ]

    async def test_duplicate_updates_configured_fields(self, services, session_factory, categories):
        first = await services.receive_vod.receive(vod_body(categories["movies"]))

        second = await services.receive_vod.receive(
            vod_body(categories["movies"], vod_remarks="Ep 3 added", vod_year="1999", vod_pic="")
        )

        assert second.code == ReceiveCode.UPDATED
        assert second.vod_id == first.vod_id
        vod = await _vod(session_factory, first.vod_id)
        assert vod.remarks == "Ep 3 added"
        # year is not an update field and an empty pic never overwrites
        assert vod.year == "2021"
        assert vod.pic == "https://img.example.com/1.jpg"

    async def test_same_name_other_category_is_new(self, services, categories):
        first = await services.receive_vod.receive(vod_body(categories["movies"]))
        second = await services.receive_vod.receive(vod_body(categories["series"]))

        assert second.code == ReceiveCode.CREATED
        assert second.vod_id != first.vod_id

    async def test_non_latin_name_indexed_under_hash(self, services, session_factory, categories):
        result = await services.receive_vod.receive(vod_body(categories["movies"], vod_name="夜港"))

        vod = await _vod(session_factory, result.vod_id)
        assert vod.letter == "#"

    async def test_nothing_to_update(self, services, categories):
        await services.settings.save(CollectSettingsUpdate(update_fields=["year"], dedup_fields=["name", "year"]))
        await services.receive_vod.receive(vod_body(categories["movies"]))

        result = await services.receive_vod.receive(vod_body(categories["movies"]))

        assert result.code == ReceiveCode.NOTHING_TO_UPDATE
        assert result.vod_id is not None


class TestRejections:
    @pytest.mark.parametrize(
        "password, code",
        [
            ("wrong", ReceiveCode.PASS_MISMATCH),
            ("", ReceiveCode.PASS_MISMATCH),
        ],
    )
    async def test_wrong_pass(self, services, categories, password, code):
        result = await services.receive_vod.receive(vod_body(categories["movies"], **{"pass": password}))
        assert result.code == code

    async def test_short_pass(self, services, categories):
        await services.settings.save_system("short")

        result = await services.receive_vod.receive(vod_body(categories["movies"], **{"pass": "short"}))

        assert result.code == ReceiveCode.PASS_TOO_SHORT

    async def test_name_required(self, services, categories):
        result = await services.receive_vod.receive(vod_body(categories["movies"], vod_name="  "))
        assert result.code == ReceiveCode.NAME_REQUIRED

    async def test_blocked_keyword(self, services, categories):
        await services.settings.save(CollectSettingsUpdate(filter_keywords="trailer, cam"))

        result = await services.receive_vod.receive(vod_body(categories["movies"], vod_name="Night Harbor trailer"))

        assert result.code == ReceiveCode.BLOCKED_KEYWORD
        assert "trailer" in result.msg

    async def test_keyword_checked_before_synonyms(self, services, categories):
        await services.settings.save(
            CollectSettingsUpdate(
                filter_keywords="cam",
                enable_synonyms=True,
                name_synonyms_text="Harbor=Harbor cam",
            )
        )

        result = await services.receive_vod.receive(vod_body(categories["movies"]))

        assert result.code == ReceiveCode.CREATED

    async def test_unknown_category(self, services, categories):
        result = await services.receive_vod.receive(vod_body(9999))
        assert result.code == ReceiveCode.TYPE_NOT_FOUND

    async def test_article_category_rejected_for_video(self, services, categories):
        result = await services.receive_vod.receive(vod_body(categories["news"]))
        assert result.code == ReceiveCode.TYPE_NOT_FOUND


class TestTypeBinding:
    async def test_bound_remote_type_is_mapped(self, services, session_factory, categories):
        source_id = await make_source(services)
        await services.type_bind.save_bind(source_id, 12, categories["series"], "TV")

        result = await services.receive_vod.receive(vod_body(12, source_id=source_id))

        assert result.code == ReceiveCode.CREATED
        vod = await _vod(session_factory, result.vod_id)
        assert vod.type_id == categories["series"]

    async def test_unbound_remote_type_rejected_when_source_has_bindings(self, services, categories):
        source_id = await make_source(services)
        await services.type_bind.save_bind(source_id, 12, categories["series"])

        result = await services.receive_vod.receive(vod_body(categories["movies"], source_id=source_id))

        assert result.code == ReceiveCode.TYPE_UNBOUND

    async def test_source_without_bindings_passes_type_through(self, services, session_factory, categories):
        source_id = await make_source(services)

        result = await services.receive_vod.receive(vod_body(categories["movies"], source_id=source_id))

        assert result.code == ReceiveCode.CREATED

    async def test_falls_back_to_type_name(self, services, session_factory, categories):
        source_id = await make_source(services)

        result = await services.receive_vod.receive(
            vod_body(777, source_id=source_id, type_name="Series")
        )

        vod = await _vod(session_factory, result.vod_id)
        assert vod.type_id == categories["series"]


class TestSynonyms:
    async def test_rewrites_name_and_area(self, services, session_factory, categories):
        await services.settings.save(
            CollectSettingsUpdate(
                enable_synonyms=True,
                name_synonyms_text="Harbor=Port",
                area_synonyms_text="USA=United States",
            )
        )

        result = await services.receive_vod.receive(vod_body(categories["movies"], vod_area="USA"))

        vod = await _vod(session_factory, result.vod_id)
        assert vod.name == "Night Port"
        assert vod.area == "United States"

    async def test_disabled_synonyms_leave_values(self, services, session_factory, categories):
        await services.settings.save(CollectSettingsUpdate(name_synonyms_text="Harbor=Port"))

        result = await services.receive_vod.receive(vod_body(categories["movies"]))

        vod = await _vod(session_factory, result.vod_id)
        assert vod.name == "Night Harbor"


class TestPlayList:
    async def test_merge_keeps_existing_episodes(self, services, session_factory, categories):
        first = await services.receive_vod.receive(vod_body(categories["movies"]))
        update = vod_body(
            categories["movies"],
            playList=[
                {
                    "playerName": "m3u8",
                    "episodes": [{"num": 3, "title": "Ep 3", "url": "https://v.example.com/3.m3u8"}],
                }
            ],
        )

        await services.receive_vod.receive(update)

        episodes = await _episodes(session_factory, first.vod_id)
        assert [e.episode_num for e in episodes] == [1, 2, 3]

    async def test_merge_overwrites_same_episode_number(self, services, session_factory, categories):
        first = await services.receive_vod.receive(vod_body(categories["movies"]))
        update = vod_body(
            categories["movies"],
            playList=[{"playerName": "m3u8", "episodes": [{"title": "Ep 1", "url": "https://mirror.example.com/1"}]}],
        )

        await services.receive_vod.receive(update)

        episodes = await _episodes(session_factory, first.vod_id)
        assert [e.url for e in episodes] == ["https://mirror.example.com/1", "https://v.example.com/2.m3u8"]

    async def test_replace_drops_old_episodes(self, services, session_factory, categories):
        await services.settings.save(CollectSettingsUpdate(play_update_mode="replace"))
        first = await services.receive_vod.receive(vod_body(categories["movies"]))
        update = vod_body(
            categories["movies"],
            playList=[{"playerName": "m3u8", "episodes": [{"title": "Only", "url": "https://v.example.com/x"}]}],
        )

        await services.receive_vod.receive(update)

        episodes = await _episodes(session_factory, first.vod_id)
        assert [(e.episode_num, e.title) for e in episodes] == [(1, "Only")]

    async def test_unknown_player_kept_by_name(self, services, session_factory, categories):
        body = vod_body(
            categories["movies"],
            playList=[{"playerName": "mystery", "episodes": [{"url": "https://v.example.com/m"}]}],
        )

        result = await services.receive_vod.receive(body)
        await services.receive_vod.receive(body)

        async with session_factory() as session:
            sources = (
                await session.execute(select(VodSource).where(VodSource.vod_id == result.vod_id))
            ).scalars().all()
        assert [(s.player_id, s.player_name) for s in sources] == [(0, "mystery")]

    async def test_legacy_fields_are_converted(self, services, session_factory, categories):
        body = vod_body(
            categories["movies"],
            playList=None,
            vod_play_from="m3u8$$$backup",
            vod_play_url="Ep 1$https://a/1#Ep 2$https://a/2$$$Ep 1$https://b/1",
        )

        result = await services.receive_vod.receive(body)

        episodes = await _episodes(session_factory, result.vod_id)
        assert len(episodes) == 3


def test_build_play_list_from_legacy():
    play_list = build_play_list_from_legacy(
        "m3u8$$$$$$empty",
        "First$https://a/1#broken#$https://a/3$$$$$$",
    )

    assert play_list == [
        {
            "player_name": "m3u8",
            "episodes": [
                {"episode_num": 1, "title": "First", "url": "https://a/1", "sort": 0},
                {"episode_num": 3, "title": "Episode 3", "url": "https://a/3", "sort": 2},
            ],
        }
    ]


class TestLedger:
    async def test_records_remote_item(self, services, session_factory, categories):
        source_id = await make_source(services)

        first = await services.receive_vod.receive(
            vod_body(categories["movies"], source_id=source_id, vod_id="remote-42")
        )
        await services.receive_vod.receive(vod_body(categories["movies"], source_id=source_id, vod_id="remote-42"))

        assert await services.tasks.check_record_exists(source_id, "remote-42")
        async with session_factory() as session:
            records = (await session.execute(select(CollectRecord))).scalars().all()
        assert len(records) == 1
        assert records[0].local_id == first.vod_id
        assert records[0].is_new is False


class TestHttp:
    async def test_json_body(self, client, categories):
        response = await client.post("/api/receive/vod", json=vod_body(categories["movies"]))

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == 1
        assert "art_id" not in data

    async def test_form_body_with_json_play_list(self, client, session_factory, categories):
        form = vod_body(categories["movies"])
        form["playList"] = json.dumps(form["playList"])

        response = await client.post("/api/receive/vod", data=form)

        data = response.json()
        assert data["code"] == 1
        assert len(await _episodes(session_factory, data["vod_id"])) == 2

    async def test_rejection_is_200_with_code(self, client, categories):
        response = await client.post("/api/receive/vod", json=vod_body(categories["movies"], **{"pass": "x"}))

        assert response.status_code == 200
        assert response.json()["code"] == 3002

    async def test_non_object_json(self, client):
        response = await client.post("/api/receive/vod", json=[1, 2])
        assert response.status_code == 400
