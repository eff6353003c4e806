"""
Tests for clearing code sequencing and allocation.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from clearing_engine.reconciliation.codes import (
    ClearingCodeAllocator,
    code_sort_key,
    next_clearing_code,
)


class TestCodeSequence:

    @pytest.mark.parametrize("current,expected", [
        (None, "A"),
        ("A", "B"),
        ("Y", "Z"),
        ("Z", "AA"),
        ("AZ", "BA"),
        ("ZZ", "AAA"),
        ("b", "C"),
    ])
    def test_successor(self, current, expected):
        assert next_clearing_code(current) == expected

    def test_sort_order(self):
        assert sorted(["AA", "B", "A", "Z"], key=code_sort_key) == ["A", "B", "Z", "AA"]


class TestAllocator:

    def test_monotonic_per_account(self, store):
        allocator = ClearingCodeAllocator(store)

        assert allocator.allocate("4111") == "A"
        assert allocator.allocate("4111") == "B"
        assert allocator.allocate("4011") == "A"

    def test_resumes_after_imported_codes(self, store, make_line):
        line = make_line("l1", debit=1000)
        line.clearing_code = "C"
        store.add_lines([line])

        assert ClearingCodeAllocator(store).allocate("4111") == "D"

    def test_skips_codes_in_use(self, store, make_line):
        line = make_line("l1", debit=1000)
        line.clearing_code = "B"
        store.add_lines([line])
        store.set_last_clearing_code("4111", "A")

        assert ClearingCodeAllocator(store).allocate("4111") == "C"


class TestConcurrentAllocation:

    WORKERS = 10

    def test_parallel_allocations_are_distinct(self, store):
        allocator = ClearingCodeAllocator(store)
        barrier = threading.Barrier(self.WORKERS)

        def allocate(_):
            barrier.wait()
            return [allocator.allocate("4111") for _ in range(5)]

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            codes = [code for batch in pool.map(allocate, range(self.WORKERS)) for code in batch]

        assert len(codes) == 50
        assert len(set(codes)) == 50
        assert store.last_clearing_code("4111") == max(codes, key=code_sort_key)

    def test_parallel_lettrages_get_distinct_codes(self, executor, store, make_line):
        store.add_lines(
            [make_line(f"d{i}", debit=1000 + i) for i in range(self.WORKERS)]
            + [make_line(f"c{i}", credit=1000 + i) for i in range(self.WORKERS)]
        )
        barrier = threading.Barrier(self.WORKERS)

        def execute(i):
            barrier.wait()
            return executor.execute_lettrage([f"d{i}", f"c{i}"], "4111")

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            results = list(pool.map(execute, range(self.WORKERS)))

        assert all(r.success for r in results)
        codes = [r.data.code for r in results]
        assert len(set(codes)) == self.WORKERS
        assert all(line.is_cleared for line in store.list_lines())
