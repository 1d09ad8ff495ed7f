"""
Article 集約のテスト（DBを使わない）
"""
import random
import pytest
from datetime import datetime, timedelta

from app.core.exceptions import InvalidStatusTransitionError, ValidationError
from app.models import Article, ArticleKind, ArticleStatus, Keyword
from app.schemas import ArticleCreatedEvent, ArticleDeletedEvent


def _article(kind=ArticleKind.REGULAR, **kwargs) -> Article:
    defaults = {
        "id": "article-0000000001",
        "title": "제목",
        "content": "본문",
        "writer_id": "writer-1",
        "board_id": 1,
    }
    defaults.update(kwargs)
    return Article.create(kind=kind, **defaults)


def _keyword(keyword_id: int, board_id=None) -> Keyword:
    return Keyword(id=keyword_id, name=f"kw{keyword_id}", board_id=board_id, usage_count=0, is_active=True)


class TestArticleCreate:
    """記事生成のテストクラス"""

    def test_create_regular(self):
        article = _article()

        assert article.kind == ArticleKind.REGULAR
        assert article.status == ArticleStatus.ACTIVE
        assert article.view_count == 0
        assert article.created_at == article.updated_at
        assert article.event_start_date is None

    def test_create_registers_created_event(self):
        article = _article()

        events = article.pull_domain_events()

        assert len(events) == 1
        assert isinstance(events[0], ArticleCreatedEvent)
        assert events[0].article_id == article.id
        assert events[0].board_id == 1
        assert article.pull_domain_events() == []

    def test_create_event_requires_period(self):
        with pytest.raises(ValidationError):
            _article(kind=ArticleKind.EVENT)

    def test_create_event_rejects_reversed_period(self):
        start = datetime(2025, 5, 2)
        with pytest.raises(ValidationError):
            _article(kind=ArticleKind.EVENT, event_start_date=start, event_end_date=start - timedelta(days=1))

    def test_create_regular_rejects_period(self):
        with pytest.raises(ValidationError):
            _article(event_start_date=datetime(2025, 5, 1), event_end_date=datetime(2025, 5, 2))

    def test_create_event_with_same_start_and_end(self):
        moment = datetime(2025, 5, 1)

        article = _article(kind=ArticleKind.EVENT, event_start_date=moment, event_end_date=moment)

        assert article.has_event_period()

    @pytest.mark.parametrize("article_id", ["short", "x" * 51, "   "])
    def test_invalid_id(self, article_id):
        with pytest.raises(ValidationError):
            _article(id=article_id)

    @pytest.mark.parametrize("field", ["id", "title", "content", "writer_id"])
    def test_required_fields(self, field):
        with pytest.raises(ValidationError):
            _article(**{field: None})

    def test_title_is_sanitized(self):
        article = _article(title="  <b>공지</b>   입니다 \n ")

        assert article.title == "공지 입니다"

    def test_title_too_long(self):
        with pytest.raises(ValidationError):
            _article(title="가" * 201)

    def test_title_only_tags_is_rejected(self):
        with pytest.raises(ValidationError):
            _article(title="<br/>")

    def test_id_is_immutable(self):
        article = _article()
        with pytest.raises(ValidationError):
            article.id = "article-0000000002"


class TestArticleImages:
    """画像置換のテストクラス"""

    def test_replace_assigns_dense_sequences(self):
        article = _article()

        article.replace_images([("i1", "https://x/1.png"), ("i2", "https://x/2.png"), ("i3", "/3.png")])

        assert [image.sequence for image in article.images] == [1, 2, 3]
        assert [image.image_id for image in article.images] == ["i1", "i2", "i3"]
        assert article.first_image_url == "https://x/1.png"

    def test_replace_is_idempotent(self):
        article = _article()
        images = [("i1", "https://x/1.png"), ("i2", "https://x/2.png")]

        article.replace_images(images)
        first = [(i.sequence, i.image_id, i.image_url) for i in article.images]
        article.replace_images(images)
        second = [(i.sequence, i.image_id, i.image_url) for i in article.images]

        assert first == second
        assert article.first_image_url == "https://x/1.png"

    def test_replace_with_empty_removes_all(self):
        article = _article()
        article.replace_images([("i1", "https://x/1.png")])

        article.replace_images([])

        assert article.images == []
        assert article.first_image_url is None

    def test_sequences_stay_dense_after_many_replacements(self):
        article = _article()
        rng = random.Random(7)

        for _ in range(20):
            n = rng.randint(0, 6)
            article.replace_images([(f"i{k}", f"https://x/{k}.png") for k in range(n)])

            assert [image.sequence for image in article.images] == list(range(1, n + 1))
            expected_first = article.images[0].image_url if article.images else None
            assert article.first_image_url == expected_first


class TestArticleKeywords:
    """キーワード操作のテストクラス"""

    def test_add_increments_once_per_new_mapping(self):
        article = _article()
        k1, k2 = _keyword(1), _keyword(2)

        article.add_keywords([k1, k2, k1])
        article.add_keywords([k1])

        assert sorted(article.keyword_ids()) == [1, 2]
        assert k1.usage_count == 1
        assert k2.usage_count == 1

    def test_remove_decrements(self):
        article = _article()
        k1, k2 = _keyword(1), _keyword(2)
        article.add_keywords([k1, k2])

        article.remove_keywords([k1])

        assert article.keyword_ids() == [2]
        assert k1.usage_count == 0
        assert k2.usage_count == 1

    def test_remove_unmapped_keyword_is_noop(self):
        article = _article()
        k1, k2 = _keyword(1), _keyword(2)
        article.add_keywords([k1])

        article.remove_keywords([k2])

        assert k2.usage_count == 0
        assert article.keyword_ids() == [1]

    def test_replace_keywords(self):
        article = _article()
        k1, k2, k3 = _keyword(1), _keyword(2), _keyword(3)
        article.add_keywords([k1, k2])

        article.replace_keywords([k2, k3])

        assert sorted(article.keyword_ids()) == [2, 3]
        assert (k1.usage_count, k2.usage_count, k3.usage_count) == (0, 1, 1)

    def test_unsaved_keyword_is_rejected(self):
        article = _article()
        with pytest.raises(ValidationError):
            article.add_keywords([Keyword(name="new")])

    def test_usage_count_conservation_across_articles(self):
        """どんな操作列の後でも usage_count は対応の数と一致する"""
        keywords = [_keyword(i) for i in range(1, 6)]
        articles = [_article(id=f"article-000000000{n}") for n in range(1, 4)]
        rng = random.Random(42)

        for _ in range(200):
            article = rng.choice(articles)
            chosen = rng.sample(keywords, rng.randint(0, 3))
            operation = rng.choice(["add", "remove", "replace"])
            getattr(article, f"{operation}_keywords")(chosen)

            for keyword in keywords:
                mapped = sum(keyword.id in a.keyword_ids() for a in articles)
                assert keyword.usage_count == mapped


class TestArticleState:
    """状態遷移のテストクラス"""

    def test_delete_is_idempotent_without_second_event(self):
        article = _article()
        article.pull_domain_events()

        assert article.delete("spam") is True
        first_events = article.pull_domain_events()
        assert article.delete("spam") is False
        second_events = article.pull_domain_events()

        assert article.status == ArticleStatus.DELETED
        assert len(first_events) == 1
        assert isinstance(first_events[0], ArticleDeletedEvent)
        assert first_events[0].reason == "spam"
        assert second_events == []

    def test_delete_keeps_images_and_keywords(self):
        article = _article()
        keyword = _keyword(1)
        article.add_keywords([keyword])
        article.replace_images([("i1", "https://x/1.png")])

        article.delete()

        assert len(article.images) == 1
        assert keyword.usage_count == 1

    def test_block_and_activate(self):
        article = _article()

        article.block()
        assert article.is_blocked()
        article.activate()
        assert article.is_active()

    def test_deleted_article_cannot_be_blocked(self):
        article = _article()
        article.delete()

        with pytest.raises(InvalidStatusTransitionError):
            article.block()
        with pytest.raises(InvalidStatusTransitionError):
            article.activate()

    def test_increment_view_count(self):
        article = _article()

        article.increment_view_count()
        article.increment_view_count()

        assert article.view_count == 2

    def test_is_written_by(self):
        article = _article(writer_id="writer-9")

        assert article.is_written_by("writer-9")
        assert not article.is_written_by("writer-1")
        assert not article.is_written_by(None)

    def test_change_event_period_only_for_events(self):
        article = _article()
        with pytest.raises(ValidationError):
            article.change_event_period(datetime(2025, 1, 1), datetime(2025, 1, 2))

    def test_change_event_period(self):
        article = _article(
            kind=ArticleKind.EVENT,
            event_start_date=datetime(2025, 1, 1),
            event_end_date=datetime(2025, 1, 2),
        )

        article.change_event_period(datetime(2025, 2, 1), datetime(2025, 2, 10))

        assert article.event_start_date == datetime(2025, 2, 1)
        assert article.event_end_date == datetime(2025, 2, 10)

    def test_update_content_keeps_updated_at_after_created_at(self):
        article = _article()

        article.update_content(title="새 제목", content="새 본문")

        assert article.title == "새 제목"
        assert article.updated_at >= article.created_at

    def test_change_board(self):
        article = _article()

        article.change_board(2)

        assert article.board_id == 2
