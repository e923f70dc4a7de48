"""Tests for writing rendered markdown to disk."""

from datetime import UTC, datetime, timedelta, timezone

from linear_tasks import save_recently_done_tasks_to_file, save_tasks_to_file

from .fakes import make_task


def fixed_clock(*args, tz=UTC):
    return lambda: datetime(*args, tzinfo=tz)


def test_save_tasks_creates_dir_and_file(tmp_path):
    out_dir = tmp_path / "nested" / "linear"
    path = save_tasks_to_file([make_task("ABC-1")], out_dir, clock=fixed_clock(2026, 2, 11, 9))

    assert path == out_dir / "list-2026-02-11.md"
    assert path.read_text(encoding="utf-8").startswith("# Linear Tasks\n\n## ABC-1\n")


def test_save_recently_done_uses_prefix_and_days(tmp_path):
    path = save_recently_done_tasks_to_file(
        [make_task("ABC-1", "2026-02-10T12:00:00")], tmp_path, 3, clock=fixed_clock(2026, 2, 11)
    )
    assert path.name == "recently-done-2026-02-11.md"
    content = path.read_text(encoding="utf-8")
    assert content.startswith("# Linear Recently Done Tasks (Last 3 Days)\n")
    assert "- **Completed At**: 2026-02-10\n" in content


def test_save_overwrites_existing_file(tmp_path):
    clock = fixed_clock(2026, 2, 11)
    save_tasks_to_file([make_task("OLD-1")], tmp_path, clock=clock)
    path = save_tasks_to_file([], tmp_path, clock=clock)
    assert path.read_text(encoding="utf-8") == "# Linear Tasks\n\nNo tasks found.\n"


def test_filename_date_is_utc(tmp_path):
    # 20:00 on the 10th at UTC-08:00 is the 11th in UTC
    clock = fixed_clock(2026, 2, 10, 20, tz=timezone(timedelta(hours=-8)))
    assert save_tasks_to_file([], tmp_path, clock=clock).name == "list-2026-02-11.md"


def test_writes_utf8(tmp_path):
    task = make_task("ABC-1", title="サンプル ✅")
    path = save_tasks_to_file([task], tmp_path, clock=fixed_clock(2026, 2, 11))
    assert "サンプル ✅" in path.read_bytes().decode("utf-8")


def test_naive_clock_is_utc(tmp_path, tokyo_tz):
    # read as Tokyo time this would land on the 10th
    clock = lambda: datetime(2026, 2, 11, 3, 0)
    assert save_tasks_to_file([], tmp_path, clock=clock).name == "list-2026-02-11.md"
