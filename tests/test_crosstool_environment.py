import os

import pytest

from crosstool_environment import crosstool_config, crosstool_environment

SAMPLE = """\
#
# Automatically generated file; DO NOT EDIT.
#
CT_CONFIG_VERSION="4"
CT_PREFIX_DIR="${CT_PREFIX:-${HOME}/x-tools}/${CT_HOST:+HOST-${CT_HOST}/}${CT_TARGET}"
CT_PREFIX_DIR_RO=y
CT_ARCH_64=y
# CT_CC_LANG_FORTRAN is not set
"""


def _install_ct_ng(env: crosstool_environment) -> None:
    os.makedirs(os.path.dirname(env.exe))
    with open(env.exe, "w") as file:
        file.write("#!/bin/sh\n")


def test_config_parse_and_dumps() -> None:
    config = crosstool_config.parse("x86_64-linux-gnu", SAMPLE)

    assert config.get("CT_CONFIG_VERSION") == "4"
    assert config.get("CT_ARCH_64") == "y"
    assert "CT_CC_LANG_FORTRAN" in config.option_list
    assert config.get("CT_CC_LANG_FORTRAN") is None
    assert "# CT_CC_LANG_FORTRAN is not set\n" in config.dumps()


def test_config_set_values() -> None:
    config = crosstool_config("aarch64-linux-gnu")
    config.set("CT_PREFIX_DIR", "/work/prefix")
    config.set("CT_CC_LANG_CXX", True)
    config.set("CT_PARALLEL_JOBS", 8)
    config.set("CT_DEBUG_GDB", False)

    assert config.dumps().splitlines() == [
        'CT_PREFIX_DIR="/work/prefix"',
        "CT_CC_LANG_CXX=y",
        "CT_PARALLEL_JOBS=8",
        "# CT_DEBUG_GDB is not set",
    ]
    assert config.get("CT_PREFIX_DIR") == "/work/prefix"


def test_build_host_runs_configure_make_install(tmp_path, runner) -> None:
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 4, runner)
    source_dir = tmp_path / "work" / "src-crosstool"
    source_dir.mkdir(parents=True)
    (source_dir / ".version").write_text("1.26.0")
    runner.on(" install", lambda command: _install_ct_ng(env))

    env.build_host()

    assert runner.commands == [
        f"{source_dir}/configure --prefix={env.prefix_dir}",
        f"make -C {env.build_dir} -j 4",
        f"make -C {env.build_dir} install",
    ]
    assert runner.calls[0]["cwd"] == env.build_dir
    assert env.ready()


def test_build_host_is_idempotent(tmp_path, runner) -> None:
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 4, runner)
    _install_ct_ng(env)

    env.build_host()
    env.build_host()

    assert runner.commands == []


def test_generate_config_from_sample(tmp_path, runner) -> None:
    (tmp_path / "samples" / "aarch64-linux-gnu").mkdir(parents=True)
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 6, runner)
    runner.on("aarch64-linux-gnu", lambda command: (tmp_path / ".config").write_text(SAMPLE))

    config = env.generate_config("aarch64-linux-gnu", str(tmp_path / "work" / "ct"), "/work/prefix")

    assert runner.commands == [f"env -u LD_LIBRARY_PATH {env.exe} aarch64-linux-gnu"]
    assert runner.calls[0]["cwd"] == str(tmp_path)
    assert not (tmp_path / ".config").exists()
    assert config.get("CT_PREFIX_DIR") == "/work/prefix"
    assert config.get("CT_PREFIX_DIR_RO") is None
    assert config.get("CT_CC_LANG_CXX") == "y"
    assert config.get("CT_LOCAL_TARBALLS_DIR") == env.tarball_dir
    assert config.get("CT_PARALLEL_JOBS") == "6"


def test_generate_config_requires_sample(tmp_path, runner) -> None:
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 1, runner)

    with pytest.raises(AssertionError):
        env.generate_config("riscv64-linux-gnu", str(tmp_path / "ct"), "/prefix")
    assert runner.commands == []


def test_generate_config_reuses_preserved_config(tmp_path, runner) -> None:
    ct_dir = tmp_path / "ct"
    ct_dir.mkdir()
    (ct_dir / ".config").write_text(SAMPLE)
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 1, runner)

    config = env.generate_config("x86_64-linux-gnu", str(ct_dir), "/prefix")

    assert runner.commands == []
    assert config.get("CT_CONFIG_VERSION") == "4"
    assert config.get("CT_PREFIX_DIR") == "/prefix"


def test_bootstrap_target_removes_config_on_success(tmp_path, runner) -> None:
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 1, runner)
    config = crosstool_config("x86_64-linux-gnu")
    config.set("CT_PREFIX_DIR", str(tmp_path / "prefix"))
    ct_dir = tmp_path / "ct"
    written: list[str] = []
    runner.on("+libc_main", lambda command: written.append((ct_dir / ".config").read_text()))

    env.bootstrap_target(config, str(ct_dir))

    assert runner.calls[0]["cwd"] == str(ct_dir)
    assert written == [config.dumps()]
    assert not (ct_dir / ".config").exists()


def test_bootstrap_target_failure_purges_prefix(tmp_path, runner) -> None:
    env = crosstool_environment(str(tmp_path / "work"), str(tmp_path / "samples"), 1, runner)
    prefix = tmp_path / "prefix"
    config = crosstool_config("aarch64-linux-gnu")
    config.set("CT_PREFIX_DIR", str(prefix))

    def fail(command: str) -> None:
        (prefix / "aarch64-linux-gnu" / "sysroot").mkdir(parents=True)
        raise RuntimeError("ct-ng failed")

    runner.on("+libc_main", fail)

    with pytest.raises(RuntimeError, match="ct-ng failed"):
        env.bootstrap_target(config, str(tmp_path / "ct"))

    assert not prefix.exists()
