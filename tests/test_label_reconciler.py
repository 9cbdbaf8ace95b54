import logging

import numpy as np

from services.label_reconciler import (
    MISMATCH_PREFIX,
    LabelHistogramEntry,
    label_histogram,
    reconcile,
    splice_missing_status,
)


def _hist(counts):
    return [LabelHistogramEntry(value, count) for value, count in counts.items()]


def test_all_labels_present():
    rows, missing = reconcile(_hist({0: 900, 1: 50, 2: 50}), ["bg", "tumor", "edema"])

    assert rows == ["bg   900 mm3", "tumor   50 mm3", "edema   50 mm3"]
    assert missing == ""


def test_absent_label_is_reported_missing(caplog):
    with caplog.at_level(logging.ERROR):
        rows, missing = reconcile(_hist({0: 900, 2: 100}), ["bg", "tumor", "edema"])

    assert rows == ["bg   900 mm3", "tumor   Missing", "edema   100 mm3"]
    assert "tumor" in missing
    assert missing == MISMATCH_PREFIX + "tumor, "
    assert "Mismatch in lengths" in caplog.text


def test_extra_histogram_values_do_not_abort():
    rows, missing = reconcile(_hist({0: 10, 1: 5, 7: 3}), ["bg", "fg"])

    assert rows == ["bg   10 mm3", "fg   5 mm3"]
    assert missing == MISMATCH_PREFIX


def test_histogram_counts_sum_to_voxel_count():
    rng = np.random.default_rng(0)
    labels = rng.integers(0, 5, size=4096, dtype=np.uint8)
    labels[labels == 3] = 0

    histogram = label_histogram(labels)

    assert sum(entry.count for entry in histogram) == labels.size
    assert [entry.value for entry in histogram] == [0, 1, 2, 4]


def test_splice_replaces_status_marker():
    diagnostics = ":: banner ::\nmodel: x\nStatus: OK\n"

    spliced = splice_missing_status(diagnostics, "tumor, edema, ")

    assert "Status: tumor, edema\n" in spliced
    assert "Status: OK" not in spliced


def test_splice_without_missing_labels_is_identity():
    diagnostics = "Status: OK\n"
    assert splice_missing_status(diagnostics, "") == diagnostics
