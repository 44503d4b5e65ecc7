"""Tests for configuration resolution: defaults < config file < CLI flags."""

from pathlib import Path

import pytest

from makellamafile.config import (
    EffectiveConfig,
    default_config_path,
    default_settings,
    load_config_file,
    parse_config,
    render_config,
    resolve,
    write_default_config,
)
from makellamafile.errors import ConfigReadError, InvalidAlignment, UserInputError


def test_precedence_cli_over_file_over_defaults() -> None:
    defaults = {"OUTPUT_DIR": "/a"}
    config_text = "OUTPUT_DIR=/b\n"

    assert resolve(defaults, config_text, {"OUTPUT_DIR": "/c"}).output_dir == Path("/c")
    assert resolve(defaults, config_text, {}).output_dir == Path("/b")
    assert resolve(defaults, None, None).output_dir == Path("/a")


def test_cli_flag_none_means_unset() -> None:
    cfg = resolve({"OUTPUT_DIR": "/a"}, 'OUTPUT_DIR="/b"', {"OUTPUT_DIR": None})
    assert cfg.output_dir == Path("/b")


def test_parse_config_shell_style() -> None:
    """Quoted values, comments, export prefix and blank lines are handled."""
    text = (
        "# MakeLlamafile configuration\n"
        "\n"
        'OUTPUT_DIR="/models/llamafiles"\n'
        "export DOWNLOAD_DIR='/models/huggingface'\n"
        'LLAMAFILE_ARGS="--ctx-size 4096 --temp 0.2"  # inline comment\n'
        "ALIGNMENT=4096\n"
    )
    parsed = parse_config(text)
    assert parsed == {
        "OUTPUT_DIR": "/models/llamafiles",
        "DOWNLOAD_DIR": "/models/huggingface",
        "LLAMAFILE_ARGS": "--ctx-size 4096 --temp 0.2",
        "ALIGNMENT": "4096",
    }


def test_unknown_keys_are_ignored() -> None:
    parsed = parse_config('OUTPUT_DIR="/x"\nFUTURE_OPTION="yes"\nPATH="/evil"\n')
    assert parsed == {"OUTPUT_DIR": "/x"}


def test_no_variable_interpolation() -> None:
    """${VAR} is kept literally; nothing is read from the process environment."""
    parsed = parse_config('LLAMAFILE_ARGS="--threads ${NPROC}"\n')
    assert parsed["LLAMAFILE_ARGS"] == "--threads ${NPROC}"


def test_resolve_all_keys(tmp_path: Path) -> None:
    defaults = default_settings(tmp_path)
    cfg = resolve(
        defaults,
        'DOWNLOAD_DIR="/dl"\nLLAMAFILE_ARGS="-ngl 999"\nBIN_DIR="/opt/bin"\n',
        {"ALIGNMENT": 64},
    )
    assert cfg == EffectiveConfig(
        output_dir=tmp_path / "models" / "llamafiles",
        download_dir=Path("/dl"),
        llamafile_args="-ngl 999",
        bin_dir=Path("/opt/bin"),
        alignment=64,
    )


def test_default_settings_layout(tmp_path: Path) -> None:
    cfg = resolve(default_settings(tmp_path))
    assert cfg.output_dir == tmp_path / "models" / "llamafiles"
    assert cfg.download_dir == tmp_path / "models" / "huggingface"
    assert cfg.bin_dir == tmp_path / ".local" / "share" / "makellamafile" / "bin"
    assert cfg.alignment == 0
    assert cfg.llamafile_args is None
    assert default_config_path(tmp_path) == tmp_path / ".config" / "makellamafile" / "config"


def test_tilde_is_expanded(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = resolve({"OUTPUT_DIR": "~/llamafiles"})
    assert cfg.output_dir == tmp_path / "llamafiles"


def test_missing_output_dir_is_user_error() -> None:
    with pytest.raises(UserInputError):
        resolve({}, "DOWNLOAD_DIR=/x\n")


@pytest.mark.parametrize("value", ["-1", "abc", "1.5"])
def test_invalid_alignment(value: str) -> None:
    with pytest.raises(InvalidAlignment):
        resolve({"OUTPUT_DIR": "/a"}, f"ALIGNMENT={value}\n")


def test_load_missing_config_file(tmp_path: Path) -> None:
    assert load_config_file(tmp_path / "does-not-exist") is None


def test_write_default_config_round_trip(tmp_path: Path) -> None:
    """A written config resolves back to the same settings and is not overwritten."""
    cfg = EffectiveConfig(
        output_dir=tmp_path / "out dir",
        download_dir=tmp_path / "dl",
        llamafile_args='--prompt-template "chatml"',
        bin_dir=tmp_path / "bin",
        alignment=4096,
    )
    path = tmp_path / "config" / "makellamafile" / "config"

    assert write_default_config(path, cfg) is True
    assert path.stat().st_mode & 0o777 == 0o644
    text = load_config_file(path)
    assert text is not None
    assert text.startswith("# makellamafile configuration")
    assert resolve({}, text) == cfg

    other = EffectiveConfig(output_dir=tmp_path / "elsewhere")
    assert write_default_config(path, other) is False
    assert load_config_file(path) == text


def test_render_config_comments_out_missing_args(tmp_path: Path) -> None:
    text = render_config(EffectiveConfig(output_dir=tmp_path))
    assert '# LLAMAFILE_ARGS="' in text
    assert "LLAMAFILE_ARGS" not in parse_config(text)


def test_load_config_file_not_utf8(tmp_path: Path) -> None:
    path = tmp_path / "config"
    path.write_bytes(b"OUTPUT_DIR=\xff\xfe\n")
    with pytest.raises(ConfigReadError) as excinfo:
        load_config_file(path)
    assert excinfo.value.path == path
