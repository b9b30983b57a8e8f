"""Pytest configuration and fixtures for DocGraph tests."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional

import pytest

from docgraph_cli.config_manager import Settings
from docgraph_cli.llm import ContentBlock, TextGenerationClient, TextResponse
from docgraph_cli.models import PipelineContext, Scope, SourceFile
from docgraph_cli.parser import collect_source_files


class FakeTextClient(TextGenerationClient):
    """In-memory stand-in for a hosted text generation service."""

    provider_name = "fake"

    def __init__(
        self,
        text: str = "# Generated Documentation\n\nOverview of the code.",
        blocks: Optional[List[ContentBlock]] = None,
        error: Optional[Exception] = None,
    ):
        self.text = text
        self.blocks = blocks
        self.error = error
        self.calls = []

    def generate(self, prompt: str, max_output_tokens: int) -> TextResponse:
        self.calls.append((prompt, max_output_tokens))
        if self.error is not None:
            raise self.error
        if self.blocks is not None:
            return TextResponse(content=list(self.blocks), model="fake-model")
        return TextResponse(
            content=[ContentBlock(type="text", text=self.text)],
            model="fake-model",
            usage={"input_tokens": len(prompt), "output_tokens": len(self.text)},
        )


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path: Path, monkeypatch):
    """Point config at a temp file and hide real API keys.

    Keeps tests from reading the developer's ~/.docgraph/config.toml or
    picking up credentials from the environment.
    """
    monkeypatch.setattr("docgraph_cli.config_manager.CONFIG_FILE", tmp_path / "docgraph" / "config.toml")
    for var in ("DOCGRAPH_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "GROQ_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    yield
    # CLI invocations install a Rich handler; drop it between tests
    logging.getLogger("docgraph_cli").handlers = []
    logging.getLogger("docgraph_cli").setLevel(logging.NOTSET)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_files(sample_project_path: Path) -> List[SourceFile]:
    return collect_source_files(sample_project_path)


@pytest.fixture
def chain_files() -> List[SourceFile]:
    """a.ts -> b.ts -> c.ts through relative imports, plus an unrelated d.ts."""
    return [
        SourceFile("a.ts", "typescript", "import { b } from './b';\nexport function a() { return b(); }\n"),
        SourceFile("b.ts", "typescript", "import { c } from './c';\nexport function b() { return c(); }\n"),
        SourceFile("c.ts", "typescript", "export function c() { return 1; }\n"),
        SourceFile("d.ts", "typescript", "export const d = () => 4;\n"),
    ]


@pytest.fixture
def fake_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture
def make_client() -> Callable[..., FakeTextClient]:
    return FakeTextClient


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", max_output_tokens=2048)


@pytest.fixture
def make_context() -> Callable[..., PipelineContext]:
    def _make(scope: Scope = Scope.REPOSITORY, target: Optional[str] = None) -> PipelineContext:
        return PipelineContext(
            request_id="req-1",
            repository_id="repo-1",
            user_id="user-1",
            scope=scope,
            target=target,
        )

    return _make


@pytest.fixture
def sample_typescript_code() -> str:
    """Sample TypeScript code for testing the extractor."""
    return '''import React, { useState } from 'react';
import type { Props } from './types';
import * as path from 'path';
import './styles.css';

export async function loadUser(id: string, retries?: number, timeout = 30): Promise<User> {
  return fetchUser(id);
}

function helper(a, b) {
  return a + b;
}

export const formatName = (first: string, last: string): string => `${first} ${last}`;

const double = x => x * 2;

export class UserCard extends Component<Props> implements Renderable, Serializable {
  render() {}
}

class Internal {
}

export const VERSION = "1.0";
'''
