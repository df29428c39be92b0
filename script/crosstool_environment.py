import os
import common
from download_source import crosstool_source, extract_source


class crosstool_config:
    """crosstool-ng的.config配置

    ct-ng只能从工作目录下的.config文件读取配置，此处将其解析为显式的值在各阶段之间传递，
    只在调用ct-ng前写入目标的crosstool工作目录，构建完成后立即删除
    """

    target: str  # 目标平台
    option_list: dict[str, str | None]  # 所有选项，值为None表示该选项未设置

    def __init__(self, target: str, option_list: dict[str, str | None] | None = None) -> None:
        self.target = target
        self.option_list = option_list or {}

    @classmethod
    def parse(cls, target: str, text: str) -> "crosstool_config":
        """从.config文件内容解析配置

        Args:
            target (str): 目标平台
            text (str): .config文件内容

        Returns:
            crosstool_config: 解析得到的配置
        """
        option_list: dict[str, str | None] = {}
        for line in map(str.strip, text.splitlines()):
            if line.startswith("CT_") and "=" in line:
                key, value = line.split("=", 1)
                option_list[key] = value
            elif line.startswith("# CT_") and line.endswith(" is not set"):
                option_list[line[2 : -len(" is not set")]] = None
        return cls(target, option_list)

    @classmethod
    def load(cls, target: str, path: str) -> "crosstool_config":
        """从.config文件加载配置

        Args:
            target (str): 目标平台
            path (str): .config文件路径
        """
        with open(path) as file:
            return cls.parse(target, file.read())

    def get(self, key: str) -> str | None:
        value = self.option_list.get(key)
        # 字符串选项带有引号
        return value[1:-1] if value and value.startswith('"') and value.endswith('"') else value

    def set(self, key: str, value: str | int | bool) -> None:
        """设置选项

        Args:
            key (str): 选项名
            value (str | int | bool): 布尔值写为y，整数原样写入，字符串加引号
        """
        match value:
            case bool():
                self.option_list[key] = "y" if value else None
            case int():
                self.option_list[key] = str(value)
            case str():
                self.option_list[key] = f'"{value}"'

    def unset(self, key: str) -> None:
        self.option_list[key] = None

    def dumps(self) -> str:
        """生成.config文件内容"""
        return "".join(f"{key}={value}\n" if value is not None else f"# {key} is not set\n" for key, value in self.option_list.items())

    @common._support_dry_run(lambda path: f"{common.log_prefix} Write crosstool-ng configure to {path}.")
    def write(self, path: str, dry_run: bool | None = None) -> None:
        """将配置写入.config文件

        Args:
            path (str): .config文件路径
            dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
        """
        with open(path, "w") as file:
            file.write(self.dumps())


class crosstool_environment:
    """宿主平台上的crosstool-ng，所有目标共享，每次运行最多构建一次"""

    work_dir: str  # 存放所有中间文件的目录
    samples_dir: str  # crosstool-ng样例目录，必须命名为samples，ct-ng在其上级目录中查找本地样例
    jobs: int  # 编译所用线程数
    source_dir: str  # crosstool-ng源代码目录
    build_dir: str  # crosstool-ng构建目录
    prefix_dir: str  # crosstool-ng安装目录
    exe: str  # ct-ng可执行文件路径
    tarball_dir: str  # ct-ng下载的源代码包缓存目录，所有目标共享
    run: common.command_runner  # 外部命令执行接口

    def __init__(self, work_dir: str, samples_dir: str, jobs: int, run: common.command_runner = common.run_command) -> None:
        self.work_dir = work_dir
        self.samples_dir = samples_dir
        self.jobs = jobs
        self.source_dir = os.path.join(work_dir, "src-crosstool")
        self.build_dir = os.path.join(work_dir, "build-host-crosstool")
        self.prefix_dir = os.path.join(work_dir, "prefix-host-crosstool")
        self.exe = os.path.join(self.prefix_dir, "bin", "ct-ng")
        self.tarball_dir = os.path.join(work_dir, "tarballs")
        self.run = run

    def ready(self) -> bool:
        """ct-ng是否已经安装"""
        return os.path.isfile(self.exe)

    def build_host(self) -> None:
        """在宿主平台上构建crosstool-ng，已安装时直接返回"""
        if self.ready():
            print(f"{common.log_prefix} crosstool-ng exists at {self.exe}, skip build.")
            return

        common.mkdir(self.work_dir, False)
        extract_source(crosstool_source, self.work_dir, self.source_dir, self.run)

        # 删除之前可能损坏的构建和安装目录
        common.mkdir(self.build_dir)
        common.mkdir(self.prefix_dir)

        print(f"{common.log_prefix} Building crosstool-ng for host...")
        self.run(f"{os.path.join(self.source_dir, 'configure')} --prefix={self.prefix_dir}", cwd=self.build_dir)
        self.run(f"make -C {self.build_dir} -j {self.jobs}")
        self.run(f"make -C {self.build_dir} install")

    def _run_ct_ng(self, arg: str, cwd: str) -> None:
        # ct-ng拒绝在设置了LD_LIBRARY_PATH的环境中运行
        self.run(f"env -u LD_LIBRARY_PATH {self.exe} {arg}", cwd=cwd)

    def generate_config(self, target: str, ct_dir: str, prefix_dir: str) -> crosstool_config:
        """生成目标平台的crosstool-ng配置，若目标的crosstool工作目录中保留有.config则复用

        Args:
            target (str): 目标平台，需要在samples目录中存在同名样例
            ct_dir (str): 目标的crosstool工作目录
            prefix_dir (str): 引导编译器和sysroot的安装目录

        Returns:
            crosstool_config: 目标平台配置
        """
        preserved_path = os.path.join(ct_dir, ".config")
        if os.path.isfile(preserved_path):
            print(f"{common.log_prefix} {preserved_path} exists already, not generating a new one.")
            config = crosstool_config.load(target, preserved_path)
        elif common.command_dry_run.get():
            config = crosstool_config(target)
        else:
            print(f"{common.log_prefix} Generating a new configure for {target}...")
            common.check_lib_dir(target, os.path.join(self.samples_dir, target))
            # ct-ng从工作目录下的samples目录读取样例，并将.config生成在工作目录下
            top_dir = os.path.dirname(self.samples_dir)
            generated_path = os.path.join(top_dir, ".config")
            self._run_ct_ng(target, top_dir)
            config = crosstool_config.load(target, generated_path)
            common.remove(generated_path)

        config.set("CT_PREFIX_DIR", prefix_dir)
        config.unset("CT_PREFIX_DIR_RO")
        config.set("CT_CC_LANG_CXX", True)
        config.set("CT_LOCAL_TARBALLS_DIR", self.tarball_dir)
        config.set("CT_SAVE_TARBALLS", True)
        config.set("CT_PARALLEL_JOBS", self.jobs)
        return config

    def bootstrap_target(self, config: crosstool_config, ct_dir: str) -> None:
        """构建到引导gcc为止，只得到编译目标库所需的sysroot和引导编译器，而非完整的工具链
           失败时删除目标的安装目录，成功后删除.config

        Args:
            config (crosstool_config): 目标平台配置
            ct_dir (str): 目标的crosstool工作目录
        """
        prefix_dir = config.get("CT_PREFIX_DIR")
        assert prefix_dir, f"CT_PREFIX_DIR of {config.target} is not set."
        config_path = os.path.join(ct_dir, ".config")

        print(f"{common.log_prefix} Performing crosstool build for {config.target}...")
        common.mkdir(ct_dir, False)
        common.mkdir(self.tarball_dir, False)
        config.write(config_path)
        try:
            self._run_ct_ng("+libc_main", ct_dir)
        except BaseException:
            # 删除不完整的安装目录，使重试时不会看到半成品
            common.remove_if_exists(prefix_dir)
            raise
        common.remove_if_exists(config_path)


assert __name__ != "__main__", "Import this file instead of running it directly."
