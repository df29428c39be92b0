import fnmatch
import os
from typing import Callable
import common


class package_layout:
    """打包目录，安装结果被移动到此处后进行整理"""

    root: str  # 打包目录
    target: str  # 目标平台
    version: str  # gcc版本号

    def __init__(self, root: str, target: str, version: str) -> None:
        self.root = root
        self.target = target
        self.version = version

    @property
    def lib_dir(self) -> str:
        return os.path.join(self.root, "lib")

    @property
    def include_dir(self) -> str:
        return os.path.join(self.root, "include")


class normalizer:
    """一种目录形态及其整理方法"""

    name: str  # 整理方法名
    predicate: Callable[[package_layout], bool]  # 判断目录是否具有该形态
    action: Callable[[package_layout], None]  # 整理方法

    def __init__(self, name: str, predicate: Callable[[package_layout], bool], action: Callable[[package_layout], None]) -> None:
        self.name = name
        self.predicate = predicate
        self.action = action


# 整理方法列表，按注册顺序依次执行
normalizer_list: list[normalizer] = []


def register(predicate: Callable[[package_layout], bool]):
    """注册整理方法到列表

    Args:
        predicate (Callable[[package_layout], bool]): 目录形态判断函数，仅在其返回True时执行整理方法
    """

    def decorator(fn: Callable[[package_layout], None]) -> Callable[[package_layout], None]:
        normalizer_list.append(normalizer(fn.__name__, predicate, fn))
        return fn

    return decorator


def has_target_dir(layout: package_layout) -> bool:
    """host != target时autotools使用exectoolsdir，安装结果会多出一层以目标平台命名的目录"""
    return os.path.isdir(os.path.join(layout.root, layout.target))


def has_lib64_dir(layout: package_layout) -> bool:
    """区分lib和lib64的64位平台会将库安装到lib64"""
    return os.path.isdir(os.path.join(layout.root, "lib64"))


def _libgcc_dir(layout: package_layout) -> str:
    return os.path.join(layout.lib_dir, "gcc", layout.target, layout.version)


def has_libgcc_dir(layout: package_layout) -> bool:
    """libgcc的静态库安装在lib/gcc/<target>/<version>中"""
    return os.path.isdir(_libgcc_dir(layout))


def _versioned_include_dir(layout: package_layout) -> str:
    return os.path.join(layout.include_dir, "c++", layout.version)


def has_versioned_include_dir(layout: package_layout) -> bool:
    """libstdc++的头文件安装在include/c++/<version>中"""
    return os.path.isdir(_versioned_include_dir(layout))


@register(has_target_dir)
def collapse_target_dir(layout: package_layout) -> None:
    common.merge_tree(os.path.join(layout.root, layout.target), layout.root)


@register(has_lib64_dir)
def merge_lib64_dir(layout: package_layout) -> None:
    common.merge_tree(os.path.join(layout.root, "lib64"), layout.lib_dir)


@register(has_libgcc_dir)
def flatten_libgcc_dir(layout: package_layout) -> None:
    # 只保留文件，libgcc附带的include目录由使用者的编译器提供
    libgcc_dir = _libgcc_dir(layout)
    for item in os.listdir(libgcc_dir):
        src_path = os.path.join(libgcc_dir, item)
        if os.path.isfile(src_path):
            dst_path = os.path.join(layout.lib_dir, item)
            common.remove_if_exists(dst_path)
            common.rename(src_path, dst_path)
    common.remove(os.path.join(layout.lib_dir, "gcc"))


@register(has_versioned_include_dir)
def flatten_include_dir(layout: package_layout) -> None:
    tmp_dir = os.path.join(layout.root, "include-tmp")
    common.rename(layout.include_dir, tmp_dir)
    common.rename(os.path.join(tmp_dir, "c++", layout.version), layout.include_dir)
    common.remove(tmp_dir)


def normalize(layout: package_layout) -> list[str]:
    """按注册顺序检查目录形态并整理，不具有的形态直接跳过

    Args:
        layout (package_layout): 打包目录

    Returns:
        list[str]: 执行了的整理方法名
    """
    applied: list[str] = []
    for item in normalizer_list:
        if item.predicate(layout):
            print(f"{common.log_prefix}   Apply {item.name}")
            item.action(layout)
            applied.append(item.name)
    return applied


# 静态链接时不需要的文件
strip_pattern_list: dict[str, tuple[str, ...]] = {
    "libtool": ("*.la",),  # 直接向ld传递-L选项，不需要libtool文件
    "pretty-printer": ("*.py",),  # gdb的pretty-printer
    "crt": ("crt*.o",),  # 启动和结束目标文件由使用者的编译器提供
    "gcov": ("libgcov.a",),  # 覆盖率插桩库
}
shared_pattern_list: tuple[str, ...] = ("*.so", "*.so.*")


def strip(layout: package_layout, keep_shared: bool = False) -> list[str]:
    """删除lib目录中静态链接不需要的文件

    Args:
        layout (package_layout): 打包目录
        keep_shared (bool, optional): 是否保留动态库. 默认不保留.

    Returns:
        list[str]: 被删除的文件，是相对于lib目录的路径
    """
    pattern_list = [pattern for patterns in strip_pattern_list.values() for pattern in patterns]
    if not keep_shared:
        pattern_list += shared_pattern_list
    removed: list[str] = []
    if not os.path.isdir(layout.lib_dir):
        return removed
    for dir, _, files in os.walk(layout.lib_dir):
        for file in filter(lambda file: any(fnmatch.fnmatch(file, pattern) for pattern in pattern_list), files):
            path = os.path.join(dir, file)
            common.remove(path)
            removed.append(os.path.relpath(path, layout.lib_dir))
    return sorted(removed)


assert __name__ != "__main__", "Import this file instead of running it directly."
