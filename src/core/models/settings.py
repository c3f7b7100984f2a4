"""
Installer settings — loaded from mongosetup.yml.

Every field has a default, so a missing config file means "install the
versions this release was built against". The file only needs to list
what differs.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LinuxSettings(BaseModel):
    """apt-based install (Ubuntu / Debian family)."""

    series: str = "8.0"             # MongoDB release series
    codename: str = "noble"         # Ubuntu codename for the apt repo
    service_name: str = "mongod"
    architectures: str = "amd64,arm64"

    @property
    def keyring_path(self) -> str:
        return f"/usr/share/keyrings/mongodb-server-{self.series}.gpg"

    @property
    def sources_list(self) -> str:
        return f"/etc/apt/sources.list.d/mongodb-org-{self.series}.list"

    @property
    def key_url(self) -> str:
        return f"https://www.mongodb.org/static/pgp/server-{self.series}.asc"


class WindowsSettings(BaseModel):
    """MSI-based install."""

    version: str = "8.0.6"
    download_url: str = (
        "https://fastdl.mongodb.org/windows/mongodb-windows-x86_64-{version}-signed.msi"
    )
    data_dir: str = r"C:\data\db"
    install_root: str = r"C:\Program Files\MongoDB\Server"
    service_name: str = "MongoDB"

    @property
    def resolved_download_url(self) -> str:
        return self.download_url.format(version=self.version)

    @property
    def bin_dir(self) -> str:
        return f"{self.install_root}\\{self.version}\\bin"


class WebSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class InstallerSettings(BaseModel):
    """Root settings object."""

    database_name: str = "app_database"
    connection_uri: str = "mongodb://localhost:27017"

    linux: LinuxSettings = Field(default_factory=LinuxSettings)
    windows: WindowsSettings = Field(default_factory=WindowsSettings)
    web: WebSettings = Field(default_factory=WebSettings)
