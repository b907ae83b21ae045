"""Shared type definitions for folio."""

from typing import Literal

# Posix path of a source document relative to the source root
type SourceId = str

# Posix path of a generated file relative to the output root
type ArtifactId = str

# Outcome of a single build pass
type BuildStatus = Literal["succeeded", "partially_failed", "failed"]

# Build session phase
type SessionPhase = Literal["idle", "running", "failed"]

# Which orchestrator entry point produced a report
type BuildKind = Literal["full", "incremental"]

# What a watched path is, as far as rebuilding goes
type ChangeCategory = Literal["source", "template", "config"]

# Kind of a source document
type DocumentKind = Literal["page", "asset"]
