import os
import common

# 按依赖顺序排列的目标库，后面的库链接前面的库
lib_list = ("libgcc", "libstdc++-v3", "libatomic")

# 只构建库时禁用的可选组件
disable_option = (
    "--disable-libgomp",
    "--disable-libssp",
    "--disable-libquadmath",
    "--disable-libsanitizer",
    "--disable-libitm",
    "--disable-libvtv",
)

# 引导编译器测试C++代码时需要的选项
# -L参数需要原样保留，由子make解释
bootstrap_cxxflags = (
    "-nostdinc++ -nostdlib++ -shared-libgcc"
    " -L$$r/$(TARGET_SUBDIR)/libstdc++-v3/src"
    " -L$$r/$(TARGET_SUBDIR)/libstdc++-v3/src/.libs"
    " -L$$r/$(TARGET_SUBDIR)/libstdc++-v3/libsupc++/.libs"
)


class work_tree:
    """以(version, target)为键的工作目录树，各目标之间互不共享"""

    version: str  # gcc版本号
    target: str  # 目标平台
    name: str  # 压缩包及其顶层目录名
    ct_dir: str  # crosstool工作目录，包含.build
    prefix_dir: str  # 引导编译器和sysroot的安装目录
    sysroot_dir: str  # sysroot
    build_dir: str  # 目标库构建目录
    install_dir: str  # make install的DESTDIR
    package_dir: str  # 打包前的整理目录
    ct_build_dir: str  # ct-ng为该目标创建的构建目录
    gcc_source_dir: str  # ct-ng解压的gcc源代码
    bootstrap_gcc_dir: str  # 引导gcc的构建目录
    complibs_dir: str  # ct-ng为宿主平台构建的gmp、mpfr、mpc

    def __init__(self, work_dir: str, version: str, target: str) -> None:
        self.version = version
        self.target = target
        self.name = f"libstdc++-{version}-{target}"
        self.ct_dir = os.path.join(work_dir, f"crosstool-{version}-{target}")
        self.prefix_dir = os.path.join(work_dir, f"prefix-{version}-{target}")
        self.sysroot_dir = os.path.join(self.prefix_dir, target, "sysroot")
        self.build_dir = os.path.join(work_dir, f"build-libstdc++-{version}-{target}")
        self.install_dir = os.path.join(work_dir, f"install-{version}-{target}")
        self.package_dir = os.path.join(work_dir, f"package-{version}-{target}")
        self.ct_build_dir = os.path.join(self.ct_dir, ".build", target)
        self.gcc_source_dir = os.path.join(self.ct_build_dir, "src", "gcc")
        self.bootstrap_gcc_dir = os.path.join(self.ct_build_dir, "build", "build-cc-gcc-core", "gcc")
        self.complibs_dir = os.path.join(self.ct_build_dir, "buildtools", "complibs-host")

    def transient_dir_list(self) -> list[str]:
        """可以在完成后删除的目录"""
        return [self.package_dir, self.install_dir, self.build_dir, self.prefix_dir, self.ct_dir]


class environment:
    """使用引导编译器为目标平台构建libgcc、libstdc++和libatomic"""

    tree: work_tree  # 工作目录树
    host: str  # 宿主平台，不带vendor字段
    jobs: int  # 编译所用线程数
    run: common.command_runner  # 外部命令执行接口

    def __init__(self, tree: work_tree, host: str, jobs: int, run: common.command_runner = common.run_command) -> None:
        self.tree = tree
        self.host = host
        self.jobs = jobs
        self.run = run

    def target_env(self) -> dict[str, str]:
        """configure所需的目标编译器环境变量，-B使引导编译器在自身目录下查找cc1等程序"""
        xgcc = os.path.join(self.tree.bootstrap_gcc_dir, "xgcc")
        xgxx = os.path.join(self.tree.bootstrap_gcc_dir, "xg++")
        return {
            "CC_FOR_TARGET": f"{xgcc} -B{self.tree.bootstrap_gcc_dir}/",
            "CXX_FOR_TARGET": f"{xgxx} -B{self.tree.bootstrap_gcc_dir}/",
            "CXXFLAGS_FOR_TARGET": bootstrap_cxxflags,
        }

    def complib_option(self) -> list[str]:
        """宿主端gcc驱动需要的gmp、mpfr、mpc，优先使用ct-ng构建的版本，不存在时由configure在系统中查找"""
        if not os.path.isdir(self.tree.complibs_dir):
            return []
        return [f"--with-{lib}={self.tree.complibs_dir}" for lib in ("gmp", "mpfr", "mpc")] + ["--without-isl"]

    def configure_option(self) -> list[str]:
        prefix = self.tree.prefix_dir
        return [
            f"--build={self.host}",
            f"--host={self.host}",
            f"--target={self.tree.target}",
            f"--prefix={prefix}",
            f"--exec_prefix={prefix}",
            f"--with-sysroot={self.tree.sysroot_dir}",
            f"--with-local-prefix={self.tree.sysroot_dir}",
            "--enable-languages=c,c++",
            "--enable-threads=posix",
            "--enable-libstdcxx-verbose",
            "--enable-long-long",
            "--disable-bootstrap",
            "--disable-multilib",
            "--disable-werror",
            "--disable-nls",
            *disable_option,
            *self.complib_option(),
        ]

    def configure(self) -> None:
        """以引导编译器为目标编译器配置gcc源代码树"""
        print(f"{common.log_prefix} Configuring GCC {self.tree.version} for {self.tree.target}...")
        common.mkdir(self.tree.build_dir)
        options = " ".join(self.configure_option())
        self.run(f"{os.path.join(self.tree.gcc_source_dir, 'configure')} {options}", cwd=self.tree.build_dir, env=self.target_env())

    def make(self, *target: str) -> None:
        """在构建目录中编译指定目标

        Args:
            target (tuple[str, ...]): 要编译的目标
        """
        targets = " ".join(target)
        self.run(f"make -j {self.jobs} {targets}", cwd=self.tree.build_dir, env=self.target_env())

    def build(self) -> None:
        """构建所有目标库

        引导编译器构建时没有宿主端的C库，libgcc需要gcc构建目录中生成的头文件和make变量，
        因此必须先构建宿主端的gcc驱动，再按依赖顺序构建目标库
        """
        print(f"{common.log_prefix} Building host-side compiler driver...")
        self.make("all-gcc")
        for lib in lib_list:
            print(f"{common.log_prefix} Building {lib} for {self.tree.target}...")
            self.make(f"all-target-{lib}")

    def install(self) -> None:
        """将目标库安装到独立的DESTDIR，再把其中的前缀目录移动到打包目录"""
        print(f"{common.log_prefix} Installing {', '.join(lib_list)} into a staging folder...")
        common.mkdir(self.tree.install_dir)
        common.mkdir(self.tree.package_dir)
        for lib in lib_list:
            lib_build_dir = os.path.join(self.tree.build_dir, self.tree.target, lib)
            self.run(f"make -C {lib_build_dir} DESTDIR={self.tree.install_dir} install")
        # DESTDIR会被添加在前缀之前，安装结果位于install_dir/prefix_dir下
        staged_prefix = os.path.join(self.tree.install_dir, self.tree.prefix_dir.lstrip(os.sep))
        if common.command_dry_run.get():
            return
        common.check_lib_dir(self.tree.name, staged_prefix)
        common.merge_tree(staged_prefix, self.tree.package_dir)


assert __name__ != "__main__", "Import this file instead of running it directly."
