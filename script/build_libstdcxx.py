#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import argparse
import enum
import math
import os
import shutil
import signal
import common
import download_source
import normalize
from crosstool_environment import crosstool_environment
from gcc_environment import environment, work_tree

# 支持的目标平台，需要在samples目录中存在同名的crosstool-ng样例
target_list = (
    "aarch64-linux-gnu",
    "x86_64-linux-gnu",
)
# 需要与crosstool-ng默认的gcc版本一致
gcc_version = "13.2.0"


def debug_from_env() -> bool:
    """DEBUG环境变量设置为非空且不表示否定的值时启用调试模式"""
    return os.environ.get("DEBUG", "").strip().lower() not in ("", "0", "false", "no", "off")


class configure(common.basic_configure):
    targets: list[str]  # 要构建的目标平台
    version: str = gcc_version  # gcc版本号，与crosstool-ng绑定，不参与导入导出
    samples_dir: str  # crosstool-ng样例目录
    jobs: int  # 并发数
    debug: bool  # 是否保留中间目录
    shared: bool  # 是否保留动态库

    def __init__(
        self,
        work_dir: str | None = None,
        out_dir: str | None = None,
        targets: list[str] | None = None,
        samples_dir: str | None = None,
        jobs: int = math.floor((os.cpu_count() or 1) * 1.5),
        debug: bool | None = None,
        shared: bool = False,
    ) -> None:
        super().__init__(work_dir, out_dir)
        self.targets = list(targets or target_list)
        self.samples_dir = os.path.abspath(samples_dir or os.path.join(self.root_dir, "samples"))
        self.jobs = jobs
        self.debug = debug_from_env() if debug is None else debug
        self.shared = shared

    def check(self) -> None:
        super().check()
        assert self.jobs > 0, f"Invalid jobs: {self.jobs}."
        # ct-ng只识别名为samples的本地样例目录
        assert os.path.basename(self.samples_dir) == "samples", f'The samples directory "{self.samples_dir}" should be named "samples".'
        for target in self.targets:
            check_triplet(target)


def check_triplet(target: str) -> None:
    """检查输入triplet是否受支持

    Args:
        target (str): 目标平台
    """
    target_field = common.triplet_field(target)
    for support_triplet in target_list:
        if target_field.weak_eq(common.triplet_field(support_triplet)):
            break
    else:
        assert False, f'Target "{target}" is not support.'


def determine_host_triplet(run: common.command_runner = common.run_command) -> str:
    """通过宿主平台的C编译器获取不带vendor字段的宿主平台名称

    Args:
        run (common.command_runner, optional): 外部命令执行接口. 默认为common.run_command.

    Raises:
        RuntimeError: 找不到C编译器或编译器不支持-dumpmachine时抛出异常

    Returns:
        str: 宿主平台
    """
    for cc in ("cc", "gcc", "clang"):
        cc_exe = shutil.which(cc)
        if cc_exe:
            break
    else:
        raise RuntimeError(
            "Could not find any C compiler on your system (looked for cc, gcc, clang)! "
            "Please install one (you're gonna need it for the remaining steps anyway)."
        )
    # 该命令不修改任何文件，dry-run时也需要执行
    result = run(f"{cc_exe} -dumpmachine", ignore_error=True, capture=True, echo=False, dry_run=False)
    if not result or not result.stdout.strip():
        raise RuntimeError(f"Your compiler ({cc_exe}) does not understand -dumpmachine! Please make sure you have GCC or Clang installed.")
    return common.triplet_field(result.stdout).without_vendor()


class build_stage(enum.StrEnum):
    """单个目标的构建状态"""

    not_started = "not started"
    host_tool_ready = "host tool ready"
    env_bootstrapped = "environment bootstrapped"
    libraries_built = "libraries built"
    installed = "installed"
    packaged = "packaged"
    done = "done"
    failed = "failed"


class target_build:
    """构建单个目标平台的libstdc++发行包"""

    config: configure  # 全局配置
    tree: work_tree  # 工作目录树
    crosstool: crosstool_environment  # 所有目标共享的crosstool-ng
    env: environment  # 目标库构建环境
    stage: build_stage  # 当前状态
    archive: str  # 输出压缩包路径
    sha256_file: str  # 压缩包的sha256校验文件
    run: common.command_runner  # 外部命令执行接口

    def __init__(
        self, config: configure, target: str, host: str, crosstool: crosstool_environment, run: common.command_runner = common.run_command
    ) -> None:
        self.config = config
        self.tree = work_tree(config.work_dir, config.version, target)
        self.crosstool = crosstool
        self.env = environment(self.tree, host, config.jobs, run)
        self.stage = build_stage.not_started
        self.archive = os.path.join(config.out_dir, f"{self.tree.name}.tar.xz")
        self.sha256_file = f"{self.archive}.sha256"
        self.run = run

    def _advance(self, stage: build_stage) -> None:
        print(f"{common.log_prefix} Target {self.tree.target}: {self.stage} -> {stage}")
        self.stage = stage

    def package(self) -> None:
        """整理打包目录并生成压缩包

        打包目录最终只包含:
        - lib/     (静态库)
        - include/ (去除include/c++/<version>中间目录的头文件)
        """
        print(f"{common.log_prefix} Packaging {self.tree.name}...")
        layout = normalize.package_layout(self.tree.package_dir, self.tree.target, self.tree.version)
        normalize.normalize(layout)
        print(f"{common.log_prefix}   Removing unnecessary files")
        normalize.strip(layout, self.config.shared)
        if not common.command_dry_run.get():
            for item in (layout.lib_dir, layout.include_dir):
                common.check_lib_dir(self.tree.name, item)

        print(f"{common.log_prefix}   Compressing")
        # 旧的校验文件不能与新的压缩包共存
        common.remove_if_exists(self.sha256_file)
        common.compress(self.tree.package_dir, ["lib", "include"], self.archive, self.tree.name, self.run)
        if not common.command_dry_run.get():
            tmp_file = os.path.join(self.config.out_dir, f".{os.path.basename(self.sha256_file)}.tmp")
            try:
                with open(tmp_file, "w") as file:
                    file.write(f"{download_source.get_file_sha256(self.archive)}  {os.path.basename(self.archive)}\n")
                common.rename(tmp_file, self.sha256_file)
            finally:
                common.remove_if_exists(tmp_file)

    def cleanup(self) -> None:
        """删除残留的.config，非调试模式下同时删除所有中间目录"""
        print(f"{common.log_prefix} Cleaning up...")
        if not self.config.debug:
            for dir in self.tree.transient_dir_list():
                common.remove_if_exists(dir)
        else:
            print(f"{common.log_prefix}   Debug mode enabled. Not cleaning work directories.")
            print(f"{common.log_prefix}     (Note that for builds to succeed you'll need to clean them yourself.)")
        common.remove_if_exists(os.path.join(self.tree.ct_dir, ".config"))

    def build(self) -> None:
        """依次执行所有阶段，任一阶段失败都会终止构建"""
        print(f"{common.log_prefix} Building libstdc++ {self.tree.version} for target {self.tree.target}...")
        try:
            self.crosstool.build_host()
            self._advance(build_stage.host_tool_ready)

            ct_config = self.crosstool.generate_config(self.tree.target, self.tree.ct_dir, self.tree.prefix_dir)
            self.crosstool.bootstrap_target(ct_config, self.tree.ct_dir)
            self._advance(build_stage.env_bootstrapped)

            self.env.configure()
            self.env.build()
            self._advance(build_stage.libraries_built)

            self.env.install()
            self._advance(build_stage.installed)

            self.package()
            self._advance(build_stage.packaged)
        except BaseException:
            self._advance(build_stage.failed)
            raise
        finally:
            self.cleanup()
        self._advance(build_stage.done)
        print(f"{common.log_prefix} Package ready at {self.archive}.")


def build_all(config: configure, run: common.command_runner = common.run_command) -> None:
    """按顺序构建所有目标平台，任一目标失败时不再构建剩余目标

    Args:
        config (configure): 全局配置
        run (common.command_runner, optional): 外部命令执行接口. 默认为common.run_command.
    """
    host = determine_host_triplet(run)
    print(f"{common.log_prefix} Host triplet is {host}.")
    crosstool = crosstool_environment(config.work_dir, config.samples_dir, config.jobs, run)
    for target in config.targets:
        target_build(config, target, host, crosstool, run).build()


def consumer_flags(root: str) -> str:
    """使用发行包时需要传递给编译器和链接器的选项

    Args:
        root (str): 解压后的发行包目录
    """
    include_dir = os.path.join(root, "include")
    lib_dir = os.path.join(root, "lib")
    return f"-nostdinc++ -nostdlib++ -isystem {include_dir} -L{lib_dir} -Wl,-Bstatic -lstdc++ -latomic -Wl,-Bdynamic"


def dump_support_platform() -> None:
    """打印所有受支持的平台以及使用发行包的方法"""

    print("Target support:")
    for target in target_list:
        print(f"\t{target}")
    print("Consumer flags:")
    print(f"\t{consumer_flags(f'<path>/libstdc++-{gcc_version}-<target>')}")


def _raise_on_sigterm(signum, frame) -> None:
    # 转换为异常以执行清理
    raise SystemExit(128 + signum)


if __name__ == "__main__":
    default_config = configure()

    parser = argparse.ArgumentParser(
        description="Build minimal static libstdc++, libgcc and libatomic distributions for specific platforms.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    configure.add_argument(parser)
    parser.add_argument(
        "--targets", action="extend", nargs="*", help="The target platforms to build. Build all platforms by default.", choices=target_list
    )
    parser.add_argument("--samples-dir", type=str, help="The crosstool-ng samples directory, which must be named samples.")
    parser.add_argument(
        "--jobs",
        type=int,
        help="Number of concurrent jobs at build time. Use 1.5 times of cpu cores by default.",
        default=default_config.jobs,
    )
    parser.add_argument(
        "--debug",
        action=argparse.BooleanOptionalAction,
        help="Keep work directories after building. Use the DEBUG environment variable by default.",
    )
    parser.add_argument(
        "--shared", action=argparse.BooleanOptionalAction, help="Keep shared libraries in the package.", default=default_config.shared
    )
    parser.add_argument("--dump", action="store_true", help="Print support platforms and consumer flags, then exit.")
    args = parser.parse_args()

    current_config = configure.parse_args(args)
    current_config.load_config(args)
    current_config.reset_list_if_empty("targets", "targets", args)
    current_config.check()

    if args.dump:
        dump_support_platform()
    else:
        signal.signal(signal.SIGTERM, _raise_on_sigterm)
        build_all(current_config)

    current_config.save_config(args)
