"""Tests for Workspace (path sandbox, reads) and FileOperationQueue (ordering, drain)."""

import asyncio

import pytest

from orchestra.core.exceptions import InvalidPathError
from orchestra.workflow.models import FileActionType
from orchestra.workflow.workspace import INVALID_PATH, FileOperationQueue, Workspace


@pytest.fixture
def workspace(tmp_path):
    ws = Workspace(tmp_path / "ws", read_limit=50, structure_limit=20)
    ws.ensure_root()
    return ws


@pytest.fixture
def queue(workspace):
    return FileOperationQueue(workspace)


class TestPathSandbox:
    @pytest.mark.parametrize("path", ["../secret", "/etc/passwd", "workspace/../../x", "", "a/../../b", "~/x"])
    def test_resolve_rejects(self, workspace, path):
        with pytest.raises(InvalidPathError, match=INVALID_PATH):
            workspace.resolve(path)

    @pytest.mark.parametrize("action", list(FileActionType))
    @pytest.mark.parametrize("path", ["../secret", "/etc/passwd", "workspace/../../x"])
    async def test_every_operation_rejects(self, workspace, action, path):
        result = await workspace.apply(action, path, "x")
        assert not result.success
        assert result.error == INVALID_PATH
        assert result.error_code == "EINVAL"

    def test_workspace_prefix_is_stripped(self, workspace):
        rel, full = workspace.resolve("/workspace/src/app.py")
        assert rel == "src/app.py"
        assert full == workspace.root / "src" / "app.py"

    def test_symlink_escape_rejected(self, workspace, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (workspace.root / "link").symlink_to(outside)
        with pytest.raises(InvalidPathError):
            workspace.resolve("link/file.txt")


class TestMutations:
    async def test_create_file_makes_parents(self, workspace):
        result = await workspace.apply(FileActionType.CREATE_FILE, "src/pkg/mod.py", "x = 1\n")
        assert result.success
        assert (workspace.root / "src" / "pkg" / "mod.py").read_text() == "x = 1\n"

    async def test_create_file_overwrites(self, workspace):
        await workspace.apply(FileActionType.CREATE_FILE, "a.txt", "old")
        await workspace.apply(FileActionType.CREATE_FILE, "a.txt", "new")
        assert (workspace.root / "a.txt").read_text() == "new"

    async def test_modify_missing_file_fails(self, workspace):
        result = await workspace.apply(FileActionType.MODIFY_FILE, "missing.txt", "content")
        assert not result.success
        assert result.error_code == "ENOENT"
        assert not (workspace.root / "missing.txt").exists()

    async def test_modify_with_none_content_fails(self, workspace):
        (workspace.root / "a.txt").write_text("keep me")
        result = await workspace.apply(FileActionType.MODIFY_FILE, "a.txt", None)
        assert not result.success
        assert (workspace.root / "a.txt").read_text() == "keep me"

    async def test_modify_existing_file(self, workspace):
        (workspace.root / "a.txt").write_text("old")
        result = await workspace.apply(FileActionType.MODIFY_FILE, "a.txt", "new")
        assert result.success
        assert (workspace.root / "a.txt").read_text() == "new"

    async def test_modify_directory_path_fails(self, workspace):
        result = await workspace.apply(FileActionType.MODIFY_FILE, "src/", "x")
        assert not result.success
        assert result.error_code == "EISDIR"

    async def test_create_directory_idempotent(self, workspace):
        first = await workspace.apply(FileActionType.CREATE_DIRECTORY, "src/lib")
        second = await workspace.apply(FileActionType.CREATE_DIRECTORY, "src/lib")
        assert first.success and second.success
        assert first.path == "src/lib/"
        assert (workspace.root / "src" / "lib").is_dir()

    async def test_create_file_over_directory_fails(self, workspace):
        (workspace.root / "src").mkdir()
        result = await workspace.apply(FileActionType.CREATE_FILE, "src", "x")
        assert not result.success
        assert result.error_code == "EISDIR"


class TestReads:
    async def test_list_directory(self, workspace):
        (workspace.root / "src").mkdir()
        (workspace.root / "README.md").write_text("hi")
        (workspace.root / ".hidden").write_text("secret")

        result = await workspace.list_directory(".")

        assert result.success
        assert result.listing.entries == ["README.md", "src/"]
        assert result.listing.formatted_listing == "README.md\nsrc/"

    async def test_list_errors(self, workspace):
        (workspace.root / "file.txt").write_text("x")
        assert (await workspace.list_directory("nope")).error == "Directory not found"
        assert (await workspace.list_directory("file.txt")).error == "Path is not a directory"
        assert (await workspace.list_directory("../")).error == INVALID_PATH

    async def test_read_file(self, workspace):
        (workspace.root / "a.txt").write_text("hello")
        result = await workspace.read_file("a.txt")
        assert result.success
        assert result.file.content == "hello"
        assert not result.file.is_truncated

    async def test_read_truncates(self, workspace):
        (workspace.root / "big.txt").write_text("x" * 80)
        result = await workspace.read_file("big.txt")
        assert result.file.is_truncated
        assert result.file.content.startswith("x" * 50 + "\n... (content truncated, showing first 50 characters)")

    async def test_read_errors(self, workspace):
        (workspace.root / "src").mkdir()
        assert (await workspace.read_file("nope.txt")).error == "File not found"
        assert (await workspace.read_file("src")).error == "Path is not a file"

    async def test_structure_summary(self, workspace):
        assert await workspace.structure_summary() == "Empty"
        for name in ("alpha.txt", "beta.txt", "gamma.txt"):
            (workspace.root / name).write_text("x")
        # "alpha.txt, beta.txt, gamma.txt" is longer than the 20-char limit
        assert await workspace.structure_summary() == "alpha.txt, beta.txt,..."

    async def test_structure_summary_missing_root(self, tmp_path):
        assert await Workspace(tmp_path / "never-created").structure_summary() == "Empty"


class TestFileOperationQueue:
    async def test_ordering_and_no_cross_talk(self, workspace, queue):
        futures = [queue.submit(FileActionType.CREATE_FILE, f"f{i}.txt", f"content {i}") for i in range(10)]
        results = await asyncio.gather(*futures)

        assert all(r.success for r in results)
        assert [r.path for r in results] == [f"f{i}.txt" for i in range(10)]
        for i in range(10):
            assert (workspace.root / f"f{i}.txt").read_text() == f"content {i}"

    async def test_same_path_last_write_wins(self, workspace, queue):
        queue.submit(FileActionType.CREATE_FILE, "a.txt", "one")
        queue.submit(FileActionType.MODIFY_FILE, "a.txt", "two")
        assert await queue.wait_for_drain()
        assert (workspace.root / "a.txt").read_text() == "two"

    async def test_create_then_modify_in_one_batch(self, queue):
        create = queue.submit(FileActionType.CREATE_FILE, "new.txt", "v1")
        modify = queue.submit(FileActionType.MODIFY_FILE, "new.txt", "v2")
        assert (await create).success
        assert (await modify).success

    async def test_drain_when_idle(self, queue):
        assert queue.pending == 0
        assert await queue.wait_for_drain(timeout=0.1)

    async def test_drain_waits_for_pending(self, queue):
        queue.submit(FileActionType.CREATE_DIRECTORY, "a")
        queue.submit(FileActionType.CREATE_DIRECTORY, "b")
        assert queue.pending == 2
        assert await queue.wait_for_drain(timeout=5)
        assert queue.pending == 0

    async def test_drain_timeout_reports_false(self, queue, workspace):
        release = asyncio.Event()
        original = workspace.apply

        async def slow_apply(*args, **kwargs):
            await release.wait()
            return await original(*args, **kwargs)

        workspace.apply = slow_apply
        future = queue.submit(FileActionType.CREATE_FILE, "slow.txt", "x")

        assert await queue.wait_for_drain(timeout=0.05) is False

        release.set()
        assert (await future).success

    async def test_failure_does_not_stop_queue(self, queue):
        bad = queue.submit(FileActionType.MODIFY_FILE, "missing.txt", "x")
        good = queue.submit(FileActionType.CREATE_FILE, "ok.txt", "x")
        assert not (await bad).success
        assert (await good).success
