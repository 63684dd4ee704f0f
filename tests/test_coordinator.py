"""Tests for the crawl coordinator state machine.

The coordinator is driven synchronously through ``handle`` with fake workers,
so every interleaving of fetch completions is explicit.
"""

import asyncio

import pytest

from webindexer.crawler.coordinator import CoordinatorState, CrawlCoordinator, CrawlStateError
from webindexer.crawler.messages import (
    FetchFailure,
    FetchReport,
    FetchSuccess,
    Query,
    QueryResult,
    StartIndexing,
)
from webindexer.crawler.worker import WorkerBusyError


class FakeWorker:
    """Records dispatched requests; enforces one request at a time."""

    def __init__(self, worker_id):
        self.worker_id = worker_id
        self.requests = []
        self.current = None
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def dispatch(self, request):
        if self.current is not None:
            raise WorkerBusyError(self.worker_id)
        self.current = request.url
        self.requests.append(request.url)

    def complete(self):
        url, self.current = self.current, None
        return url

    def __repr__(self):
        return f"FakeWorker({self.worker_id!r})"


def page(*links, text="page"):
    anchors = "".join(f'<a href="{link}">link</a>' for link in links)
    return f"<html><body>{text} {anchors}</body></html>"


def make_coordinator(max_pages=100, max_workers=10):
    workers = []

    def factory(worker_id):
        worker = FakeWorker(worker_id)
        workers.append(worker)
        return worker

    coordinator = CrawlCoordinator(factory, max_pages=max_pages, max_workers=max_workers)
    return coordinator, workers


def succeed(coordinator, worker, content):
    url = worker.complete()
    coordinator.handle(FetchReport(worker=worker, outcome=FetchSuccess(url=url, content=content)))
    return url


def fail(coordinator, worker):
    url = worker.complete()
    coordinator.handle(FetchReport(worker=worker, outcome=FetchFailure(url=url, error="boom")))
    return url


def check_invariants(coordinator):
    frontier = coordinator.frontier
    assert frontier.visited_count <= coordinator.max_pages
    assert not set(frontier.pending_urls()) & frontier.visited_urls()


class TestStartIndexing:

    def test_spawns_one_worker_per_seed_and_dispatches(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/")))

        assert coordinator.state is CoordinatorState.CRAWLING
        assert [w.requests for w in workers] == [["http://a/"], ["http://b/"]]
        assert all(w.started for w in workers)
        assert coordinator.frontier.in_flight_count == 2

    def test_worker_count_is_capped(self):
        coordinator, workers = make_coordinator(max_workers=2)
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/", "http://c/")))

        assert len(workers) == 2
        assert coordinator.frontier.pending_urls() == ("http://c/",)

    def test_duplicate_seeds_are_collapsed(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/", "http://a/")))

        assert len(workers) == 1

    def test_seeds_are_normalized_like_links(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://Site/a.html#top",)))
        worker = workers[0]

        succeed(coordinator, worker, page("b.html", text="cat"))
        succeed(coordinator, worker, page("a.html", text="cat"))

        assert worker.requests == ["http://site/a.html", "http://site/b.html"]
        assert len(coordinator.index) == 2
        assert coordinator.answer_query(["cat"]) == QueryResult(1.0, 2)
        assert coordinator.crawl_finished.is_set()

    def test_second_start_is_rejected(self):
        coordinator, _ = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/",)))

        with pytest.raises(CrawlStateError):
            coordinator.handle(StartIndexing(urls=("http://b/",)))
        assert "http://b/" not in coordinator.frontier

    def test_start_indexing_posts_once(self):
        coordinator, _ = make_coordinator()
        coordinator.start_indexing(["http://a/"])

        with pytest.raises(CrawlStateError):
            coordinator.start_indexing(["http://b/"])
        assert coordinator.mailbox.qsize() == 1

    def test_start_after_termination_is_rejected(self):
        coordinator, _ = make_coordinator()
        coordinator.handle(Query(terms=()))

        with pytest.raises(CrawlStateError):
            coordinator.handle(StartIndexing(urls=("http://a/",)))

    def test_no_seeds_finishes_immediately(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=()))

        assert workers == []
        assert coordinator.crawl_finished.is_set()

    def test_report_before_start_is_rejected(self):
        coordinator, _ = make_coordinator()
        worker = FakeWorker("stray")

        with pytest.raises(CrawlStateError):
            coordinator.handle(FetchReport(worker=worker, outcome=FetchFailure(url="http://a/")))


class TestFetchReports:

    def test_success_indexes_and_redispatches_to_same_worker(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/",)))
        worker = workers[0]

        succeed(coordinator, worker, page("http://b/", "http://c/", text="cat"))

        assert len(coordinator.index) == 1
        assert coordinator.frontier.is_visited("http://a/")
        assert worker.requests == ["http://a/", "http://b/"]
        assert coordinator.frontier.pending_urls() == ("http://c/",)
        check_invariants(coordinator)

    def test_failure_counts_against_budget_and_is_not_retried(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/")))
        first, second = workers

        fail(coordinator, first)

        assert coordinator.frontier.is_visited("http://a/")
        assert len(coordinator.index) == 0
        assert coordinator.stats.fetch_failures == 1

        succeed(coordinator, second, page("http://a/"))

        assert "http://a/" not in coordinator.frontier.pending_urls()
        assert first.requests == ["http://a/"]
        assert second.requests == ["http://b/"]
        check_invariants(coordinator)

    def test_visited_url_is_never_redispatched(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/",)))
        worker = workers[0]

        succeed(coordinator, worker, page("http://b/"))
        succeed(coordinator, worker, page("http://a/", "http://b/"))

        assert worker.requests == ["http://a/", "http://b/"]
        assert coordinator.frontier.is_empty()
        assert coordinator.crawl_finished.is_set()

    def test_in_flight_url_is_not_enqueued_again(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/")))
        first, second = workers

        succeed(coordinator, first, page("http://b/", "http://c/"))

        assert first.requests == ["http://a/", "http://c/"]
        assert coordinator.frontier.pending_urls() == ()

        succeed(coordinator, second, page("http://b/"))
        assert second.requests == ["http://b/"]
        check_invariants(coordinator)

    def test_budget_of_one_with_two_seeds_visits_one(self):
        coordinator, workers = make_coordinator(max_pages=1)
        coordinator.handle(StartIndexing(urls=("u1", "u2")))

        assert len(workers) == 1
        succeed(coordinator, workers[0], page("u3"))

        assert coordinator.frontier.visited_count == 1
        assert workers[0].requests == ["u1"]
        assert coordinator.crawl_finished.is_set()

    def test_budget_holds_under_out_of_order_completion(self):
        coordinator, workers = make_coordinator(max_pages=3, max_workers=3)
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/", "http://c/")))
        a, b, c = workers

        succeed(coordinator, c, page("http://d/", "http://e/"))
        fail(coordinator, a)
        succeed(coordinator, b, page("http://f/"))

        assert coordinator.frontier.visited_count == 3
        assert coordinator.frontier.in_flight_count == 0
        assert [w.requests for w in workers] == [["http://a/"], ["http://b/"], ["http://c/"]]
        assert coordinator.crawl_finished.is_set()
        check_invariants(coordinator)

    def test_budget_never_exceeded_on_long_crawl(self):
        coordinator, workers = make_coordinator(max_pages=5, max_workers=2)
        coordinator.handle(StartIndexing(urls=("http://s/0", "http://s/1")))

        n = 2
        while any(w.current for w in workers):
            for worker in workers:
                if worker.current:
                    succeed(coordinator, worker, page(f"http://s/{n}", f"http://s/{n + 1}"))
                    n += 2
                    check_invariants(coordinator)

        assert coordinator.frontier.visited_count == 5
        assert len(coordinator.index) == 5

    def test_worker_goes_idle_and_is_reused_when_links_arrive(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/")))
        first, second = workers

        succeed(coordinator, first, page())
        assert coordinator.idle_workers == [first]
        assert not coordinator.crawl_finished.is_set()

        succeed(coordinator, second, page("http://c/", "http://d/"))

        assert second.requests == ["http://b/", "http://c/"]
        assert first.requests == ["http://a/", "http://d/"]
        assert coordinator.idle_workers == []

    def test_report_for_unknown_url_is_ignored(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/",)))

        coordinator.handle(FetchReport(worker=workers[0],
                                       outcome=FetchSuccess(url="http://zzz/", content="x")))

        assert len(coordinator.index) == 0
        assert coordinator.frontier.visited_count == 0

    def test_reports_after_termination_are_ignored(self):
        coordinator, workers = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/",)))
        coordinator.handle(Query(terms=()))

        succeed(coordinator, workers[0], page("http://b/"))

        assert len(coordinator.index) == 0
        assert workers[0].requests == ["http://a/"]

    def test_unknown_message_type(self):
        coordinator, _ = make_coordinator()
        with pytest.raises(TypeError):
            coordinator.handle("not a message")


class TestQueries:

    def indexed(self):
        coordinator, workers = make_coordinator(max_workers=1)
        coordinator.handle(StartIndexing(urls=("http://a/", "http://b/")))
        worker = workers[0]
        succeed(coordinator, worker, page(text="cat dog"))
        succeed(coordinator, worker, page(text="Cat"))
        return coordinator

    def test_fractions(self):
        coordinator = self.indexed()

        assert coordinator.answer_query(["cat"]) == QueryResult(1.0, 2)
        assert coordinator.answer_query(["dog"]) == QueryResult(0.5, 2)
        assert coordinator.answer_query(["fish"]) == QueryResult(0.0, 2)
        assert coordinator.answer_query(["cat", "dog"]) == QueryResult(0.5, 2)

    def test_empty_index_returns_zero_result(self):
        coordinator, _ = make_coordinator()
        coordinator.handle(StartIndexing(urls=("http://a/",)))

        assert coordinator.answer_query(["cat"]) == QueryResult(0.0, 0)

    def test_query_reply_is_sent_to_session(self):
        coordinator = self.indexed()
        reply_to = asyncio.Queue()

        coordinator.handle(Query(terms=("dog",), reply_to=reply_to))

        assert reply_to.get_nowait() == QueryResult(0.5, 2)
        assert coordinator.state is CoordinatorState.CRAWLING
        assert coordinator.stats.queries_answered == 1

    def test_empty_terms_terminate_from_any_state(self):
        coordinator, _ = make_coordinator()
        coordinator.handle(Query(terms=()))

        assert coordinator.state is CoordinatorState.TERMINATED
        assert coordinator.terminated.is_set()

    def test_empty_terms_stop_workers(self):
        coordinator = self.indexed()
        reply_to = asyncio.Queue()

        coordinator.handle(Query(terms=(), reply_to=reply_to))

        assert coordinator.state is CoordinatorState.TERMINATED
        assert all(w.stopped for w in coordinator.workers)
        assert reply_to.empty()


@pytest.mark.asyncio
async def test_run_loop_processes_messages_until_terminated():
    coordinator, workers = make_coordinator()
    task = asyncio.create_task(coordinator.run())

    coordinator.start_indexing(["http://a/"])
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert workers[0].requests == ["http://a/"]

    url = workers[0].complete()
    coordinator.submit(FetchReport(worker=workers[0], outcome=FetchSuccess(url=url, content="cat")))

    reply_to = asyncio.Queue()
    coordinator.submit(Query(terms=("cat",), reply_to=reply_to))
    assert await asyncio.wait_for(reply_to.get(), timeout=1) == QueryResult(1.0, 1)

    # A bad message is logged, not fatal
    coordinator.submit(StartIndexing(urls=("http://b/",)))
    coordinator.submit(Query(terms=()))

    await asyncio.wait_for(task, timeout=1)
    assert coordinator.state is CoordinatorState.TERMINATED
    assert coordinator.stats.errors == 1
