"""Shared fixtures: a throwaway key pair on disk and a recording provider."""
from __future__ import annotations

import base64
import itertools
from pathlib import Path

import pytest

from lab_infra.config import StackConfig
from lab_infra.engine import CreateResult
from lab_infra.key_material import (
    PRIVATE_KEY_LABEL,
    PUBLIC_KEY_LABEL,
    KeyMaterial,
    PemKey,
    load_key_pair,
    wrap_pem,
)

PUBLIC_DER = bytes(range(7, 169))
PRIVATE_DER = bytes(reversed(range(256))) * 3

PUBLIC_BODY = base64.b64encode(PUBLIC_DER).decode()
PRIVATE_BODY = base64.b64encode(PRIVATE_DER).decode()

IMAGE_ID = "ami-0123456789abcdef0"


def sample_key_material() -> KeyMaterial:
    return KeyMaterial(
        public_key=PemKey(label=PUBLIC_KEY_LABEL, body=PUBLIC_BODY),
        private_key=PemKey(label=PRIVATE_KEY_LABEL, body=PRIVATE_BODY),
    )


@pytest.fixture
def key_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "keys"
    directory.mkdir()
    (directory / "public_key.pem").write_text(wrap_pem(PUBLIC_BODY, PUBLIC_KEY_LABEL))
    (directory / "private_key.pem").write_text(wrap_pem(PRIVATE_BODY, PRIVATE_KEY_LABEL))
    return directory


@pytest.fixture
def key_material(key_dir: Path) -> KeyMaterial:
    return load_key_pair(key_dir)


@pytest.fixture
def config(key_dir: Path) -> StackConfig:
    return StackConfig(key_directory=key_dir, region="eu-west-1")


class FakeProvider:
    """Hands out sequential ids and echoes inputs back as outputs."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_types: set[str] = set()
        self._ids = itertools.count(1)

    def _outs(self, type_: str, id_: str, props: dict) -> dict:
        outs = {"arn": f"arn:fake:{id_}", "name": id_, **props}
        if type_ == "aws:ec2/instance:Instance":
            outs.update(public_ip="203.0.113.10", private_ip="10.0.1.10")
        return outs

    def create(self, type_: str, props: dict) -> CreateResult:
        self.calls.append(("create", type_))
        if type_ in self.fail_types:
            raise RuntimeError(f"provider rejected {type_}")
        id_ = f"{type_.rsplit(':', 1)[-1].lower()}-{next(self._ids)}"
        return CreateResult(id=id_, outs=self._outs(type_, id_, props))

    def update(self, type_: str, id_: str, olds: dict, news: dict) -> dict:
        self.calls.append(("update", type_))
        if type_ in self.fail_types:
            raise RuntimeError(f"provider rejected {type_}")
        return self._outs(type_, id_, news)

    def delete(self, type_: str, id_: str, props: dict) -> None:
        self.calls.append(("delete", type_))


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
