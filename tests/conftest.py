from __future__ import annotations

import itertools
import threading

import pytest

from summarist.llm.providers import GenerationResult, ProviderError, TextProvider
from summarist.memory_store import MemoryArticleStore, MemoryJobStore
from summarist.models import Article
from summarist.services.job_service import JobService
from summarist.services.summarizer import SummarizationEngine
from summarist.storage import JobStore

ARTICLE_CONTENT = (
    "Remote work has spread quickly and changed how teams operate. Companies are "
    "adopting cloud tools and chat platforms to support flexible schedules, which "
    "improves work-life balance but makes communication and time tracking harder. "
) * 3


class FakeProvider(TextProvider):
    def __init__(self, name, text=None, error=None, model="fake-model-1") -> None:
        self.name = name
        self.text = text
        self.error = error
        self.model = model
        self.calls = []
        self._lock = threading.Lock()

    def generate(self, request):
        with self._lock:
            self.calls.append(request)
            attempt = len(self.calls)
        if self.error is not None:
            message = self.error(attempt) if callable(self.error) else self.error
            raise ProviderError(message)
        return GenerationResult(text=self.text, model=self.model, input_tokens=10, output_tokens=5)


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def make_article():
    def _make(article_id="article-1", content=ARTICLE_CONTENT, summary=None, **overrides):
        fields = {
            "id": article_id,
            "url": f"https://example.com/{article_id}",
            "title": "Remote work and its challenges",
            "content": content,
            "language": "en",
            "summary": summary,
            "summary_generation_status": "completed" if summary else "pending",
            "summary_generated_at": None,
            "summary_model_version": None,
            "created_at": "2025-01-01T00:00:00+00:00",
            "updated_at": "2025-01-01T00:00:00+00:00",
        }
        fields.update(overrides)
        return Article(**fields)

    return _make


@pytest.fixture
def tick_clock():
    counter = itertools.count()

    def _clock():
        return f"2025-01-01T00:00:{next(counter):02d}.000000+00:00"

    return _clock


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "state.sqlite3")


@pytest.fixture(params=["sqlite", "memory"])
def job_store(request, db_path):
    if request.param == "memory":
        yield MemoryJobStore()
        return
    store = JobStore(db_path)
    yield store
    store.close()


@pytest.fixture
def build_job_service(make_article):
    def _build(providers, articles=None, job_store=None, **kwargs):
        article_store = MemoryArticleStore(articles if articles is not None else [make_article()])
        engine = SummarizationEngine(providers)
        return JobService(job_store or MemoryJobStore(), article_store, engine, **kwargs)

    return _build
