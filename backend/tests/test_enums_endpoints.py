"""
参照データエンドポイントのテスト
"""
import pytest
from httpx import AsyncClient


BASE_URL = "/api/v1/enums"


class TestEnumEndpoints:
    """参照データAPIのテストクラス"""

    @pytest.mark.asyncio
    async def test_boards_in_display_order(self, client: AsyncClient, regular_board, other_board):
        response = await client.get(f"{BASE_URL}/boards")

        assert response.status_code == 200
        data = response.json()
        assert [b["display_order"] for b in data] == sorted(b["display_order"] for b in data)
        assert data[0]["id"] == regular_board.id
        assert data[1]["id"] == other_board.id

    @pytest.mark.asyncio
    async def test_keywords(
        self, client: AsyncClient, session_factory, reference_store,
        common_keyword, board_keyword, other_board_keyword
    ):
        await reference_store.refresh(session_factory)

        response = await client.get(f"{BASE_URL}/keywords")

        assert response.status_code == 200
        data = response.json()
        assert {k["id"] for k in data} == {common_keyword.id, board_keyword.id, other_board_keyword.id}
        common = next(k for k in data if k["id"] == common_keyword.id)
        assert common["common"] is True
        assert common["board_id"] is None

    @pytest.mark.asyncio
    async def test_keywords_for_board(
        self, client: AsyncClient, session_factory, reference_store, regular_board,
        common_keyword, board_keyword, other_board_keyword
    ):
        await reference_store.refresh(session_factory)

        response = await client.get(f"{BASE_URL}/keywords", params={"boardId": regular_board.id})

        assert response.status_code == 200
        assert {k["id"] for k in response.json()} == {common_keyword.id, board_keyword.id}
