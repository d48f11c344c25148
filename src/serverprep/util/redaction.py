from __future__ import annotations

"""Redaction utility.

CONTRACT
- Inputs: text strings (failure messages, command lines)
- Outputs:
  - redacted text string
- Invariants:
  - Replaces known secret shapes (SQL passwords, PGPASSWORD, secret keys, tokens)
    with [REDACTED]
  - Best-effort; does not guarantee all secrets are caught
- Failure:
  - None (returns original text when nothing matches)
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

# Patterns with a group named `secret` only mask that group.
DEFAULT_PATTERNS = [
    re.compile(r"(?i)\bPASSWORD\s+'(?P<secret>(?:[^']|'')*)'"),
    re.compile(r"(?i)\bPGPASSWORD=(?P<secret>\"[^\"]*\"|'[^']*'|\S+)"),
    re.compile(r"(?i)\b(?:secret_access_key|access_key_id|password|passphrase)\s*[=:]\s*(?P<secret>\S+)"),
    re.compile(r"ghp_[A-Za-z0-9]{20,}"),
    re.compile(r"github_pat_[A-Za-z0-9_]{20,}"),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
]


def _mask(match: re.Match) -> str:
    if "secret" not in match.re.groupindex:
        return "[REDACTED]"
    start, end = match.span("secret")
    base = match.start()
    text = match.group(0)
    return text[: start - base] + "[REDACTED]" + text[end - base :]


@dataclass(frozen=True)
class Redactor:
    patterns: list[re.Pattern] = field(default_factory=lambda: list(DEFAULT_PATTERNS))
    literals: tuple[str, ...] = ()

    def redact(self, text: str) -> str:
        out = text
        for secret in self.literals:
            if secret:
                out = out.replace(secret, "[REDACTED]")
        for pat in self.patterns:
            out = pat.sub(_mask, out)
        return out

    def with_literals(self, *secrets: str | None) -> "Redactor":
        extra = tuple(s for s in secrets if s)
        return Redactor(patterns=self.patterns, literals=self.literals + extra)


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Redact secrets from text")
    parser.add_argument("--text", help="Text to redact")
    parser.add_argument("--file", help="File to read and redact")
    args = parser.parse_args()

    r = Redactor()
    if args.text:
        print(r.redact(args.text))
    elif args.file:
        try:
            content = Path(args.file).read_text(encoding="utf-8")
            print(r.redact(content))
        except Exception as e:
            print(f"Error reading file: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)
