"""What a classifier sees for one pull request."""

from typing import Any

from pydantic import BaseModel, Field

from src.models.contribution import Contribution

IGNORED_FILENAMES = frozenset(
    {
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "Pipfile.lock",
        "poetry.lock",
        "Cargo.lock",
        "packages.lock.json",
        "Gemfile.lock",
        "go.sum",
        ".DS_Store",
        ".env",
    }
)

IGNORED_DIRECTORIES = (
    "node_modules/",
    "__pycache__/",
    ".pytest_cache/",
    ".venv/",
    "venv/",
    "target/",
    "dist/",
    "build/",
    ".next/",
    ".nuxt/",
    ".svelte-kit/",
    "bin/",
    "obj/",
    ".vs/",
    "vendor/",
    ".vscode/",
    ".idea/",
)

IGNORED_EXTENSIONS = (".log", ".sqlite3", ".db")


def is_ignored(path: str) -> bool:
    """Lockfiles, build output, editor state and the like carry no authored work."""
    if path.rsplit("/", 1)[-1] in IGNORED_FILENAMES:
        return True
    if any(directory in path for directory in IGNORED_DIRECTORIES):
        return True
    return path.endswith(IGNORED_EXTENSIONS)


class ChangedFile(BaseModel):
    filename: str
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    patch: str | None = None

    @classmethod
    def from_github(cls, payload: dict[str, Any]) -> "ChangedFile":
        return cls(
            filename=payload["filename"],
            additions=payload.get("additions", 0),
            deletions=payload.get("deletions", 0),
            patch=payload.get("patch"),
        )


class ClassificationInput(BaseModel):
    """A merged pull request and the files it changed, minus ignored paths."""

    contribution: Contribution
    files: list[ChangedFile] = Field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def deletions(self) -> int:
        return sum(f.deletions for f in self.files)

    @classmethod
    def build(cls, contribution: Contribution, files: list[ChangedFile]) -> "ClassificationInput":
        return cls(
            contribution=contribution,
            files=[f for f in files if not is_ignored(f.filename)],
        )
