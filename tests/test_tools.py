"""
测试 ToolDispatcher

重点：file_read 的路径穿越防护、web_fetch 的前缀匹配、输出截断
"""

import httpx
import pytest

from mcp2api.errors import AllowlistViolation, NotFound, ToolExecutionError, ValidationError
from mcp2api.httpx_client import HttpxClientManager
from mcp2api.tools import MAX_TOOL_OUTPUT_CHARS, ToolDispatcher, is_within_directory


@pytest.fixture
def docs_dir(tmp_path, monkeypatch):
    """tmp_path/work/docs 为允许目录，tmp_path/secret.txt 在其外"""
    work = tmp_path / "work"
    docs = work / "docs"
    docs.mkdir(parents=True)
    (docs / "readme.txt").write_text("hello docs", encoding="utf-8")
    (docs / "big.txt").write_text("x" * (MAX_TOOL_OUTPUT_CHARS + 500), encoding="utf-8")
    (tmp_path / "secret.txt").write_text("top secret", encoding="utf-8")
    (tmp_path / "docs-evil").mkdir()
    (tmp_path / "docs-evil" / "x.txt").write_text("evil", encoding="utf-8")
    monkeypatch.chdir(work)
    return docs


def _mock_http(handler) -> HttpxClientManager:
    return HttpxClientManager(transport=httpx.MockTransport(handler))


class TestFileRead:
    """测试 file_read"""

    @pytest.mark.asyncio
    async def test_reads_allowed_file(self, docs_dir):
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        output = await dispatcher.file_read("docs/readme.txt")
        assert output.content == "hello docs"
        assert output.truncated is False

    @pytest.mark.asyncio
    async def test_relative_traversal_is_blocked(self, docs_dir):
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        with pytest.raises(AllowlistViolation):
            await dispatcher.file_read("../secret.txt")
        with pytest.raises(AllowlistViolation):
            await dispatcher.file_read("docs/../../secret.txt")

    @pytest.mark.asyncio
    async def test_etc_passwd_is_blocked(self, docs_dir):
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        for path in ("../../etc/passwd", "docs/../../etc/passwd", "/etc/passwd"):
            with pytest.raises(AllowlistViolation):
                await dispatcher.file_read(path)

    @pytest.mark.asyncio
    async def test_sibling_with_shared_prefix_is_blocked(self, docs_dir, tmp_path):
        dispatcher = ToolDispatcher(file_allowlist=[str(tmp_path / "docs")])
        with pytest.raises(AllowlistViolation):
            await dispatcher.file_read(str(tmp_path / "docs-evil" / "x.txt"))

    @pytest.mark.asyncio
    async def test_symlink_escape_is_blocked(self, docs_dir, tmp_path):
        link = docs_dir / "link.txt"
        link.symlink_to(tmp_path / "secret.txt")
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        with pytest.raises(AllowlistViolation):
            await dispatcher.file_read("docs/link.txt")

    @pytest.mark.asyncio
    async def test_output_is_truncated(self, docs_dir):
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        output = await dispatcher.file_read("docs/big.txt")
        assert len(output.content) == MAX_TOOL_OUTPUT_CHARS
        assert output.truncated is True

    @pytest.mark.asyncio
    async def test_missing_file(self, docs_dir):
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        with pytest.raises(ToolExecutionError):
            await dispatcher.file_read("docs/nope.txt")

    @pytest.mark.asyncio
    async def test_nul_byte_in_path_is_rejected(self, docs_dir):
        dispatcher = ToolDispatcher(file_allowlist=["./docs"])
        with pytest.raises(ValidationError):
            await dispatcher.file_read("docs/readme.txt\x00.png")

    @pytest.mark.asyncio
    async def test_empty_allowlist_blocks_everything(self, docs_dir):
        dispatcher = ToolDispatcher()
        with pytest.raises(AllowlistViolation):
            await dispatcher.file_read("docs/readme.txt")


class TestWebFetch:
    """测试 web_fetch"""

    @pytest.mark.asyncio
    async def test_fetches_allowed_prefix(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text="page body")

        dispatcher = ToolDispatcher(
            web_allowlist=["https://docs.example.com/"], http_client=_mock_http(handler)
        )
        output = await dispatcher.web_fetch("https://docs.example.com/guide")
        assert output.content == "page body"
        assert seen == ["https://docs.example.com/guide"]

    @pytest.mark.asyncio
    async def test_prefix_is_exact_string_match(self):
        def handler(request):
            raise AssertionError("blocked URL must not be fetched")

        dispatcher = ToolDispatcher(
            web_allowlist=["https://docs.example.com/"], http_client=_mock_http(handler)
        )
        with pytest.raises(AllowlistViolation):
            await dispatcher.web_fetch("https://docs.example.com.evil.io/")
        with pytest.raises(AllowlistViolation):
            await dispatcher.web_fetch("http://docs.example.com/")

    @pytest.mark.asyncio
    async def test_large_page_is_truncated(self):
        dispatcher = ToolDispatcher(
            web_allowlist=["https://a.test/"],
            http_client=_mock_http(lambda r: httpx.Response(200, text="y" * 9000)),
        )
        output = await dispatcher.web_fetch("https://a.test/page")
        assert len(output.content) == MAX_TOOL_OUTPUT_CHARS
        assert output.truncated is True

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        dispatcher = ToolDispatcher(web_allowlist=["https://a.test/"], http_client=_mock_http(handler))
        with pytest.raises(ToolExecutionError):
            await dispatcher.web_fetch("https://a.test/")


class TestDispatch:
    """测试 run / dispatch"""

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        dispatcher = ToolDispatcher()
        with pytest.raises(NotFound):
            await dispatcher.run("shell_exec", {"cmd": "ls"})

    @pytest.mark.asyncio
    async def test_missing_argument(self):
        dispatcher = ToolDispatcher()
        with pytest.raises(ValidationError):
            await dispatcher.run("web_fetch", {})

    @pytest.mark.asyncio
    async def test_dispatch_never_raises(self):
        dispatcher = ToolDispatcher(web_allowlist=["https://ok.test/"])
        output = await dispatcher.dispatch("web_fetch", {"url": "https://blocked.test/"})
        assert output.content.startswith("Error: Blocked by allowlist")

        output = await dispatcher.dispatch("nope", {})
        assert output.content == "Error: Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_execute_returns_text(self):
        dispatcher = ToolDispatcher()
        assert await dispatcher.execute("file_read", {}) == "Error: Missing required argument: path"


def test_is_within_directory():
    assert is_within_directory("/srv/docs/a.txt", "/srv/docs")
    assert is_within_directory("/srv/docs", "/srv/docs")
    assert not is_within_directory("/srv/docs-evil/a.txt", "/srv/docs")
    assert not is_within_directory("/srv", "/srv/docs")
