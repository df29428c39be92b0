import functools
import os
import psutil
import shutil
import json
import argparse
import inspect
import itertools
import subprocess
from collections.abc import Callable
from typing import ParamSpec, TypeAlias, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

# 所有输出的前缀
log_prefix = "[libstdcxx-dist]"


class command_dry_run:
    """是否只显示命令而不实际执行"""

    _dry_run: bool = False

    @classmethod
    def get(cls) -> bool:
        return cls._dry_run

    @classmethod
    def set(cls, dry_run: bool) -> None:
        cls._dry_run = dry_run


def _support_dry_run(echo_fn: Callable[..., str | None] | None = None) -> Callable[[Callable[P, R]], Callable[P, R | None]]:
    """根据dry_run参数和command_dry_run中的全局状态确定是否只回显命令而不执行，若fn没有dry_run参数则只会使用全局状态

    Args:
        echo_fn (Callable[..., str | None] | None, optional): 回调函数，返回要显示的命令字符串或None，无回调或返回None时不显示命令，所有参数需要能在主函数的参数列表中找到，默认为无回调.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R | None]:
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            bound_args = signature.bind(*args, **kwargs)
            bound_args.apply_defaults()
            if echo_fn:
                param_list: list = []
                for key in inspect.signature(echo_fn).parameters.keys():
                    assert (
                        key in bound_args.arguments
                    ), f"The param {key} of echo_fn is not in the param list of fn. Every param of echo_fn should be able to find in the param list of fn."
                    param_list.append(bound_args.arguments[key])
                echo = echo_fn(*param_list)
                if echo is not None:
                    print(echo)
            dry_run: bool | None = bound_args.arguments.get("dry_run")
            assert isinstance(dry_run, bool | None), f"The param dry_run must be a bool or None."
            if dry_run is None and command_dry_run.get() or dry_run:
                return
            return fn(*bound_args.args, **bound_args.kwargs)

        return wrapper

    return decorator


def _command_echo(command: str, cwd: str | None, echo: bool) -> str | None:
    if not echo:
        return None
    return f"{log_prefix} Run command: {command}" + (f" (in {cwd})" if cwd else "")


@_support_dry_run(_command_echo)
def run_command(
    command: str,
    ignore_error: bool = False,
    capture: bool = False,
    echo: bool = True,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    dry_run: bool | None = None,
) -> subprocess.CompletedProcess[str] | None:
    """运行指定命令, 若不忽略错误, 则在命令执行出错时抛出RuntimeError, 反之打印错误码

    Args:
        command (str): 要运行的命令
        ignore_error (bool, optional): 是否忽略错误. 默认不忽略错误.
        capture (bool, optional): 是否捕获命令输出，默认为不捕获.
        echo (bool, optional): 是否回显信息，设置为False将不回显任何信息，包括错误提示，默认为回显.
        cwd (str | None, optional): 运行命令的工作目录，默认为当前工作目录.
        env (dict[str, str] | None, optional): 额外的环境变量，会覆盖当前进程的同名环境变量，默认为不添加.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Raises:
        RuntimeError: 命令执行失败且ignore_error为False时抛出异常

    Returns:
        None | subprocess.CompletedProcess[str]: 在命令正常执行结束后返回执行结果，否则返回None
    """

    if capture:
        pipe = subprocess.PIPE  # capture为True，不论是否回显都需要捕获输出
    elif echo:
        pipe = None  # 回显而不捕获输出则正常输出
    else:
        pipe = subprocess.DEVNULL  # 不回显又不捕获输出则丢弃输出
    run_env = {**os.environ, **env} if env is not None else None
    try:
        result = subprocess.run(command, stdout=pipe, stderr=pipe, shell=True, check=True, text=True, cwd=cwd, env=run_env)
    except subprocess.CalledProcessError as e:
        if not ignore_error:
            raise RuntimeError(f'Command "{command}" failed with errno={e.returncode}.')
        elif echo:
            print(f'{log_prefix} Command "{command}" failed with errno={e.returncode}, but it is ignored.')
        return None
    return result


# 外部命令执行接口，签名同run_command，测试时可替换为桩函数
command_runner: TypeAlias = Callable[..., subprocess.CompletedProcess[str] | None]


@_support_dry_run(lambda path: f"{log_prefix} Create directory {path}.")
def mkdir(path: str, remove_if_exist=True, dry_run: bool | None = None) -> None:
    """创建目录

    Args:
        path (str): 要创建的目录
        remove_if_exist (bool, optional): 是否先删除已存在的同名目录. 默认先删除已存在的同名目录.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if remove_if_exist and os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


@_support_dry_run(lambda path: f"{log_prefix} Remove {path}.")
def remove(path: str, dry_run: bool | None = None) -> None:
    """删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


@_support_dry_run(lambda path: f"{log_prefix} Remove {path} if path exists.")
def remove_if_exists(path: str, dry_run: bool | None = None) -> None:
    """如果指定路径存在则删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.lexists(path):
        remove(path)


@_support_dry_run(lambda src, dst: f"{log_prefix} Rename {src} -> {dst}.")
def rename(src: str, dst: str, dry_run: bool | None = None) -> None:
    """重命名指定路径

    Args:
        src (str): 源路径
        dst (str): 目标路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    os.rename(src, dst)


def _merge_tree(src: str, dst: str) -> None:
    os.makedirs(dst, exist_ok=True)
    for item in os.listdir(src):
        src_path = os.path.join(src, item)
        dst_path = os.path.join(dst, item)
        if os.path.isdir(src_path) and not os.path.islink(src_path) and os.path.isdir(dst_path):
            _merge_tree(src_path, dst_path)
        else:
            if os.path.lexists(dst_path):
                remove(dst_path)
            shutil.move(src_path, dst_path)
    os.rmdir(src)


@_support_dry_run(lambda src, dst: f"{log_prefix} Merge {src} -> {dst}.")
def merge_tree(src: str, dst: str, dry_run: bool | None = None) -> None:
    """将src目录中的内容移动到dst目录中，同名子目录递归合并，同名文件被覆盖，完成后删除src

    Args:
        src (str): 源目录
        dst (str): 目标目录，不存在时自动创建
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    _merge_tree(src, dst)


def check_lib_dir(lib: str, lib_dir: str, do_assert=True) -> bool:
    """检查库目录是否存在

    Args:
        lib (str): 库名称，用于提供错误报告信息
        lib_dir (str): 库目录
        do_assert (bool, optional): 是否断言库存在. 默认断言.

    Returns:
        bool: 返回库是否存在
    """
    message = f'{log_prefix} Cannot find "{lib}" in directory "{lib_dir}"'
    if not do_assert and not os.path.exists(lib_dir):
        print(message)
        return False
    else:
        assert os.path.exists(lib_dir), message
    return True


def compress(src_dir: str, items: list[str], archive: str, root: str, run: command_runner = run_command) -> None:
    """将src_dir下的items打包为以root为唯一顶层目录的tar.xz压缩包
       先写入输出目录下的临时文件，压缩成功后再重命名为archive，失败时删除临时文件

    Args:
        src_dir (str): 要打包内容所在的目录
        items (list[str]): 要打包的项，是相对于src_dir的路径
        archive (str): 压缩包路径，应以.tar.xz结尾
        root (str): 压缩包内的顶层目录名
        run (command_runner, optional): 外部命令执行接口. 默认为run_command.
    """
    assert archive.endswith(".tar.xz"), f'Archive "{archive}" should end with ".tar.xz".'
    out_dir = os.path.dirname(archive)
    mkdir(out_dir, False)
    tmp_tar = os.path.join(out_dir, f".{os.path.basename(archive)[: -len('.xz')]}.tmp")
    tmp_txz = f"{tmp_tar}.xz"
    try:
        run(f"tar --transform 's#^#{root}/#S' -cf {tmp_tar} -C {src_dir} {' '.join(items)}")
        memory_MB = psutil.virtual_memory().available // 1048576 + 3072
        run(f"xz -fev9 -T 0 --memlimit={memory_MB}MiB {tmp_tar}")
        rename(tmp_txz, archive)
    finally:
        for path in (tmp_tar, tmp_txz):
            remove_if_exists(path)


class triplet_field:
    """平台名称各个域的内容"""

    arch: str  # 架构
    os: str  # 操作系统
    vendor: str  # 制造商
    abi: str  # abi/libc
    num: int  # 字段数

    def __init__(self, triplet: str) -> None:
        """解析平台名称

        Args:
            triplet (str): 输入平台名称
        """
        field = triplet.strip().split("-")
        self.arch = field[0]
        self.num = len(field)
        match (self.num):
            case 2:
                self.os = "unknown"
                self.vendor = "unknown"
                self.abi = field[1]
            case 3:
                self.os = field[1]
                self.vendor = "unknown"
                self.abi = field[2]
            case 4:
                self.vendor = field[1]
                self.os = field[2]
                self.abi = field[3]
            case _:
                assert False, f'Illegal triplet "{triplet}"'

    def without_vendor(self) -> str:
        """去除vendor字段后的平台名称

        Returns:
            str: 形如arch-os-abi的平台名称
        """
        return "-".join(filter(lambda x: x != "unknown", (self.arch, self.os, self.abi)))

    def weak_eq(self, other: "triplet_field") -> bool:
        """弱相等比较，允许vendor字段不同

        Args:
            other (triplet_field): 待比较对象

        Returns:
            bool: 是否相同
        """
        return self.arch == other.arch and self.os == other.os and self.abi == other.abi


def _check_dir(path: str) -> None:
    assert not os.path.exists(path) or os.path.isdir(path), f'The path "{path}" is not a directory.'


class basic_configure:
    work_dir: str  # 存放所有中间文件的目录
    out_dir: str  # 存放压缩包的目录

    # 仓库根目录，samples目录所在位置
    root_dir: str = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

    def __init__(self, work_dir: str | None = None, out_dir: str | None = None) -> None:
        self.work_dir = os.path.abspath(work_dir or os.path.join(self.root_dir, "work"))
        self.out_dir = os.path.abspath(out_dir or os.path.join(self.root_dir, "out"))

    @staticmethod
    def add_argument(parser: argparse.ArgumentParser) -> None:
        """为argparse添加--work-dir、--out-dir、--export、--import和--dry-run选项

        Args:
            parser (argparse.ArgumentParser): 命令行解析器
        """
        parser.add_argument("--work-dir", type=str, help="The directory to hold all transient build state.")
        parser.add_argument("--out-dir", type=str, help="The directory to place the output archives.")
        parser.add_argument("--export", dest="export_file", type=str, help="Export settings to specific file.")
        parser.add_argument("--import", dest="import_file", type=str, help="Import settings from specific file.")
        parser.add_argument(
            "--dry-run",
            dest="dry_run",
            action=argparse.BooleanOptionalAction,
            help="Preview the commands without actually executing them.",
            default=False,
        )

    @classmethod
    def parse_args(cls, args: argparse.Namespace):
        command_dry_run.set(args.dry_run)
        args_list = vars(args)
        parma_list: list = []
        for parma in itertools.islice(inspect.signature(cls.__init__).parameters.keys(), 1, None):
            assert parma in args_list, f"The parma {parma} is not in args. Every parma except self should be able to find in args."
            parma_list.append(args_list[parma])
        return cls(*parma_list)

    def check(self) -> None:
        _check_dir(self.work_dir)
        _check_dir(self.out_dir)

    def save_config(self, args: argparse.Namespace) -> None:
        """将配置保存到文件，使用json格式

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            RuntimeError: 保存失败抛出异常
        """
        export_file: str | None = args.export_file
        if export_file:
            try:
                with open(export_file, "w") as file:
                    json.dump(vars(self), file, indent=4)
                print(f'{log_prefix} Settings have been written to file "{export_file}"')
            except Exception as e:
                raise RuntimeError(f"Export settings failed: {e}")

    def load_config(self, args: argparse.Namespace) -> None:
        """从配置文件中加载配置，然后合并加载的配置和用户输入的配置

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            RuntimeError: 加载失败抛出异常
        """
        import_file: str | None = args.import_file
        if import_file:
            try:
                with open(import_file) as file:
                    import_config_list = json.load(file)
                if not isinstance(import_config_list, dict):
                    raise RuntimeError(f'Invalid configure file "{import_file}".')
            except Exception as e:
                raise RuntimeError(f'Import file "{import_file}" failed: {e}')
            current_config_list = vars(self)
            default_config_list = vars(type(self)())
            self.__dict__ = {
                # 若import_config中没有则使用default_config中的值，以便在配置类更新后原配置文件可以正确加载
                key: (import_config_list.get(key, default_config_list[key]) if value == default_config_list[key] else value)
                for key, value in current_config_list.items()
            }

    def reset_list_if_empty(self, list_name: str, arg_name: str, args: argparse.Namespace) -> None:
        """在用户输入指定列表类型选项，但没有指定表项时将该选项变为默认选项
           用于允许用户清空从配置文件中加载的列表类型选项

        Args:
            list_name (str): 列表成员名称
            arg_name (str): 用户输入对应参数的名称
            args (argparse.Namespace): 用户输入参数
        """
        if not isinstance(getattr(self, list_name), list):
            raise TypeError
        if args.import_file and getattr(args, arg_name) == []:
            setattr(self, list_name, getattr(type(self)(), list_name))


assert __name__ != "__main__", "Import this file instead of running it directly."
