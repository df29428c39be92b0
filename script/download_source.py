import common
import enum
import hashlib
import packaging.version as version
import os
import shutil


class crosstool_version(enum.StrEnum):
    """crosstool-ng版本，需与gcc版本匹配"""

    crosstool = "1.26.0"

    @common._support_dry_run()
    def save_version(self, dir: str) -> None:
        """将包版本信息保存到dir/.version文件中

        Args:
            dir (str): 要保存版本信息文件的目录
        """
        with open(os.path.join(dir, ".version"), "w") as file:
            file.write(self)

    def check_version(self, dir: str) -> int:
        """检查包版本

        Args:
            dir (str): 包根目录

        Returns:
            int: 三路比较结果，1为存在更新版本，0为版本一致，-1为需要更新
        """
        try:
            with open(os.path.join(dir, ".version")) as file:
                current_version = version.Version(file.readline())
                target_version = version.Version(self)
                if current_version > target_version:
                    return 1
                elif current_version == target_version:
                    return 0
                else:
                    return -1
        except Exception:
            return -1


class source_archive:
    """带校验值的源代码压缩包"""

    url: str  # 下载地址
    sha256: str  # 压缩包的sha256
    file_name: str  # 下载后的文件名
    version: crosstool_version  # 压缩包对应的版本

    def __init__(self, url: str, sha256: str, file_name: str, version: crosstool_version) -> None:
        self.url = url
        self.sha256 = sha256
        self.file_name = file_name
        self.version = version


crosstool_source = source_archive(
    f"http://crosstool-ng.org/download/crosstool-ng/crosstool-ng-{crosstool_version.crosstool}.tar.xz",
    "e8ce69c5c8ca8d904e6923ccf86c53576761b9cf219e2e69235b139c8e1b74fc",
    "crosstool.tar.xz",
    crosstool_version.crosstool,
)


def get_file_sha256(path: str) -> str:
    """计算文件的sha256

    Args:
        path (str): 文件路径

    Returns:
        str: 十六进制表示的sha256
    """
    h = hashlib.sha256()
    with open(path, "rb") as file:
        for chunk in iter(lambda: file.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def get_fetch_command(url: str, path: str) -> str:
    """根据系统中可用的下载工具生成下载命令

    Args:
        url (str): 下载地址
        path (str): 保存路径

    Raises:
        RuntimeError: wget和curl均不存在时抛出异常

    Returns:
        str: 下载命令
    """
    if shutil.which("wget"):
        return f"wget -O {path} {url}"
    elif shutil.which("curl"):
        return f"curl -fsSL -o {path} {url}"
    else:
        raise RuntimeError("Neither curl nor wget are present on your system. Please install one of them.")


def download_file(url: str, path: str, sha256: str, run: common.command_runner = common.run_command) -> None:
    """下载文件并校验sha256，已存在且校验通过的文件不会重复下载，校验失败的文件会被删除

    Args:
        url (str): 下载地址
        path (str): 保存路径
        sha256 (str): 期望的sha256
        run (common.command_runner, optional): 外部命令执行接口. 默认为common.run_command.

    Raises:
        RuntimeError: 下载失败或校验失败时抛出异常
    """
    if os.path.exists(path):
        if get_file_sha256(path) == sha256:
            print(f"{common.log_prefix} File {path} exists and is verified, skip download.")
            return
        # 文件损坏或者校验值已经改变
        print(f"{common.log_prefix} Checksum of {path} mismatched, download it again.")
        common.remove(path)

    run(get_fetch_command(url, path))
    if common.command_dry_run.get():
        return

    actual_sha256 = get_file_sha256(path)
    if actual_sha256 != sha256:
        common.remove(path)
        raise RuntimeError(f"Checksum verification for {path} failed!\n  Expected: {sha256}\n  Actual:   {actual_sha256}")


def extract_source(archive: source_archive, work_dir: str, source_dir: str, run: common.command_runner = common.run_command) -> None:
    """下载并解压源代码，版本一致的已解压源代码会被复用

    Args:
        archive (source_archive): 源代码压缩包
        work_dir (str): 存放压缩包的目录
        source_dir (str): 解压后的源代码目录
        run (common.command_runner, optional): 外部命令执行接口. 默认为common.run_command.
    """
    if os.path.isdir(source_dir) and archive.version.check_version(source_dir) == 0:
        print(f"{common.log_prefix} Source {source_dir} is up to date, skip extract.")
        return

    archive_path = os.path.join(work_dir, archive.file_name)
    print(f"{common.log_prefix} Downloading {os.path.basename(archive.url)}...")
    download_file(archive.url, archive_path, archive.sha256, run)

    print(f"{common.log_prefix} Extracting {archive.file_name}...")
    common.mkdir(source_dir)
    run(f"tar -C {source_dir} --strip-components 1 -xf {archive_path}")
    archive.version.save_version(source_dir)


__all__ = [
    "crosstool_version",
    "source_archive",
    "crosstool_source",
    "get_file_sha256",
    "get_fetch_command",
    "download_file",
    "extract_source",
]
