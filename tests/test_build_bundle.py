from __future__ import annotations

import sys
from pathlib import Path

import pytest
import UnityPy

from asset_factory import LAYOUTS, load_bundle, load_file, material, mono_behaviour, shader, template_bundle_bytes, \
    texture
from build_bundle import BundleBuilder, main
from config import BundleConfig
from constants import CLASS_ASSET_BUNDLE, CLASS_MONO_BEHAVIOUR
from parsers import TemplateBundle
from remapping import DanglingPolicy
from unity_files import ENTRY_SERIALIZED_FILE, Node, UnityObject, bundle_bytes, serialized_file_bytes
from utils import BuildCancelled, get_counts

CONFIG = (
    "[bundle]\n"
    "source = resources.assets\n"
    "template = template.bundle\n"
    "output = out/my_resources\n"
    "search_paths = Library\n"
    "classes = Material, Shader\n"
    "name_filters = ^Glass$\n"
    "               ^Standard$\n"
)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Source file, shared dependency and template bundle on disk."""

    library = tmp_path / "Library"
    library.mkdir()
    (library / "shared.assets").write_bytes(serialized_file_bytes([
        texture(5, "noise"),
        mono_behaviour(6, "Settings"),
    ]))
    (tmp_path / "resources.assets").write_bytes(serialized_file_bytes([
        shader(20, "Standard", dependencies=[(0, 21)]),
        shader(21, "Hidden/Fallback"),
        shader(22, "Unused"),
        material(30, "Glass", refs=[(1, 5), (1, 6)], shader=(0, 20)),
    ], externals=["library/shared.assets"]))
    (tmp_path / "template.bundle").write_bytes(template_bundle_bytes())
    (tmp_path / "bundle.ini").write_text(CONFIG, encoding="utf-8")
    return tmp_path


def _read_output(path: Path):
    return load_bundle(path.read_bytes())


def _pointer(tree: dict):
    return tree["m_FileID"], tree["m_PathID"]


def test_build_writes_bundle(project: Path) -> None:
    builder = BundleBuilder(BundleConfig.load(project / "bundle.ini"))

    output = builder.build()

    assert output == project / "out" / "my_resources"
    entry, inner = _read_output(output)
    assert entry == builder.entry_name
    assert entry.startswith("CAB-")
    # Descriptor, Glass, its shader chain and the shared texture; script-backed object left out
    assert sorted(inner.objects) == [1, 5, 20, 21, 30]

    descriptor = inner.objects[1].read_typetree()
    assert [name for name, _ in descriptor["m_Container"]] == ["Glass", "Standard", "Hidden/Fallback", "noise"]
    assert descriptor["m_AssetBundleName"] == "my_resources"
    assert descriptor["m_Dependencies"] == []
    assert inner.externals == []

    glass = inner.objects[30].read_typetree()
    assert _pointer(glass["m_Shader"]) == (0, 20)
    assert [_pointer(p) for p in glass["m_Refs"]] == [(0, 5), (0, 6)]


def test_other_template_entries_are_kept(project: Path) -> None:
    builder = BundleBuilder(BundleConfig.load(project / "bundle.ini"))

    output = builder.build()

    template = TemplateBundle.parse(output.read_bytes())
    assert template.entry_names == [builder.entry_name, "CAB-template.resS"]


def test_preserved_pointer_resolves_through_new_dependency(project: Path) -> None:
    """Glass keeps its pointer to the MonoBehaviour in shared.assets, now through the bundle's own table."""

    config = BundleConfig.load(project / "bundle.ini")
    config.dangling_references = DanglingPolicy.PRESERVE

    BundleBuilder(config).build()

    _, inner = _read_output(config.output)
    assert [e.path for e in inner.externals] == ["library/shared.assets"]
    assert inner.objects[1].read_typetree()["m_Dependencies"] == ["library/shared.assets"]

    file_id, path_id = _pointer(inner.objects[30].read_typetree()["m_Refs"][1])
    assert file_id == 1
    target_path = project / "Library" / Path(inner.externals[file_id - 1].path).name
    target = load_file(target_path.read_bytes()).objects[path_id]
    assert target.class_id == CLASS_MONO_BEHAVIOUR
    assert target.read_typetree()["m_Name"] == "Settings"


def test_build_log_lists_closure(project: Path, build_log: Path) -> None:
    BundleBuilder(BundleConfig.load(project / "bundle.ini")).build()

    text = build_log.read_text(encoding="utf-8")
    assert 'STEP 2: Collecting Dependencies' in text
    assert '* (Material) Name: "Glass"' in text
    assert '  * (Texture2D) Name: "noise"' in text
    assert get_counts() == (0, 0)


def test_cancelled_build_leaves_no_output(project: Path) -> None:
    builder = BundleBuilder(BundleConfig.load(project / "bundle.ini"), cancel=lambda: True)

    with pytest.raises(BuildCancelled):
        builder.build()
    assert not (project / "out" / "my_resources").exists()


def test_cli_overrides_output_and_depth(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    output = project / "cli" / "shallow"
    monkeypatch.setattr(sys, "argv", [
        "build_bundle.py", "--config", str(project / "bundle.ini"),
        "--output", str(output), "--max-depth", "0",
    ])

    main()

    _, inner = _read_output(output)
    assert sorted(inner.objects) == [1, 20, 30]


def test_cli_compression(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    output = project / "out" / "packed"
    monkeypatch.setattr(sys, "argv", [
        "build_bundle.py", "--config", str(project / "bundle.ini"), "--output", str(output), "--compression", "lz4",
    ])

    main()

    env = UnityPy.load(str(output))
    names = sorted(obj.read_typetree()["m_Name"] for obj in env.objects if obj.class_id != CLASS_ASSET_BUNDLE)
    assert names == ["Glass", "Hidden/Fallback", "Standard", "noise"]


def test_cli_reports_failures(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (project / "template.bundle").write_bytes(b"not a bundle")
    monkeypatch.setattr(sys, "argv", ["build_bundle.py", "--config", str(project / "bundle.ini")])

    with pytest.raises(SystemExit) as exc:
        main()

    assert exc.value.code == 1
    assert get_counts()[0] == 1


def test_cli_reports_unusable_descriptor(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A template whose AssetBundle object lacks the container fields fails with a logged error."""

    layout = Node("AssetBundle", "Base", [LAYOUTS[CLASS_ASSET_BUNDLE].children[0]])
    inner = serialized_file_bytes([UnityObject(1, CLASS_ASSET_BUNDLE, layout, {"m_Name": "broken"})])
    (project / "template.bundle").write_bytes(bundle_bytes([("CAB-broken", inner, ENTRY_SERIALIZED_FILE)]))
    monkeypatch.setattr(sys, "argv", ["build_bundle.py", "--config", str(project / "bundle.ini")])

    with pytest.raises(SystemExit) as exc:
        main()

    assert exc.value.code == 1
    assert get_counts()[0] == 1
    assert not (project / "out" / "my_resources").exists()


def test_cli_reports_bad_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["build_bundle.py", "--config", str(tmp_path / "missing.ini")])

    with pytest.raises(SystemExit) as exc:
        main()

    assert exc.value.code == 1
