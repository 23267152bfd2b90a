from crate_corpus.models import ItemResult, ItemStatus, PackageId, StageReport


def test_package_ids_order_by_name_then_version() -> None:
    ids = [
        PackageId("serde", "1.0.0"),
        PackageId("rand", "0.6.0"),
        PackageId("rand", "0.5.5"),
    ]
    assert sorted(ids) == [
        PackageId("rand", "0.5.5"),
        PackageId("rand", "0.6.0"),
        PackageId("serde", "1.0.0"),
    ]


def test_equal_package_ids_collapse_as_keys() -> None:
    first = PackageId("libc", "0.2.43")
    second = PackageId("libc", "0.2.43")
    assert first == second
    assert len({first, second}) == 1
    assert str(first) == "libc-0.2.43"


def test_stage_report_counts_and_status() -> None:
    report = StageReport(
        "validate",
        [
            ItemResult(PackageId("a", "1.0.0"), ItemStatus.COMPLETED),
            ItemResult(PackageId("b", "1.0.0"), ItemStatus.SKIPPED),
            ItemResult(PackageId("c", "1.0.0"), ItemStatus.FAILED, "bad manifest", "error: x"),
        ],
    )
    counts = report.counts()
    assert counts["completed"] == 1
    assert counts["skipped"] == 1
    assert counts["failed"] == 1
    assert counts["no_artifact"] == 0
    assert report.status == "failed"

    payload = report.to_dict()
    assert payload["stage"] == "validate"
    assert payload["details"]["total"] == 3
    assert payload["details"]["failures"] == [
        {
            "name": "c",
            "version": "1.0.0",
            "status": "failed",
            "message": "bad manifest",
            "stderr": "error: x",
        }
    ]


def test_stage_report_without_failures_is_completed() -> None:
    report = StageReport("extract", [ItemResult(PackageId("a", "1.0.0"), ItemStatus.NO_ARTIFACT)])
    assert report.status == "completed"
    assert report.get(PackageId("a", "1.0.0")).status is ItemStatus.NO_ARTIFACT
    assert report.get(PackageId("missing", "1.0.0")) is None
