"""Plugin selection from plugins.ini, and the well-known paths it lives under."""

from __future__ import annotations

import argparse
import sys

from henkit.ini import IniFile, load

BASE_PATH = "/data/hen"
USER_PLUGIN_PATH = BASE_PATH + "/plugins"
HEN_INI = "hen.ini"
HEN_SECTION = "HEN"
VERSION_TXT = "version.txt"
HDD_INI_PATH = BASE_PATH + "/" + HEN_INI
USB_INI_PATH = "/mnt/usb0/" + HEN_INI
PRX_BOOTLOADER_PATH = BASE_PATH + "/plugin_bootloader.prx"
PRX_LOADER_PATH = BASE_PATH + "/plugin_loader.prx"
PRX_SERVER_PATH = BASE_PATH + "/plugin_server.prx"
PRX_MONO_PATH = BASE_PATH + "/plugin_shellui.prx"
PLUGINS_INI_PATH = BASE_PATH + "/plugins.ini"
PLUGINS_ALL_SECTION = "all"

SHELLUI_DATA_PATH = BASE_PATH + "/shellui_data"
SHELLUI_HEN_SETTINGS = SHELLUI_DATA_PATH + "/hen_settings.xml"
SHELLUI_ICONS_PATH = SHELLUI_DATA_PATH + "/icons"
SHELLUI_HEN_SETTINGS_ICON_PATH = SHELLUI_ICONS_PATH + "/hen_settings_icon.png"

_TRUE_PREFIXES = ("1", "enabled", "yes", "y", "on", "true")


def _starts_with_case(text: str, prefix: str) -> bool:
    return text[: len(prefix)].casefold() == prefix.casefold()


def parse_bool(value: str | None) -> bool:
    """Tell whether a setting value reads as enabled.

    A value counts as enabled when it begins, ignoring case, with one of
    ``1``, ``enabled``, ``yes``, ``y``, ``on`` or ``true``.
    """
    if not value:
        return False
    return any(_starts_with_case(value, prefix) for prefix in _TRUE_PREFIXES)


def select_plugins(ini: IniFile, title_id: str) -> list[str]:
    """Return the plugin paths enabled for ``title_id``, in load order.

    Sections whose name begins with ``all`` (any case) apply to every title;
    sections whose name begins with the title id apply to that title.
    """
    selected: list[str] = []
    for section in ini.sections:
        if _starts_with_case(section.name, PLUGINS_ALL_SECTION) or section.name.startswith(title_id):
            selected.extend(kv.key for kv in section.keys if parse_bool(kv.value))
    return selected


def main(argv: list[str] | None = None) -> int:
    """List the plugins that would be loaded for a title."""
    parser = argparse.ArgumentParser(description="List the plugins enabled for a title.")
    parser.add_argument("title_id", help="title id of the running application, e.g. CUSA00001")
    parser.add_argument("--ini", default=PLUGINS_INI_PATH, help="plugins.ini to read")
    args = parser.parse_args(argv)

    for path in select_plugins(load(args.ini), args.title_id):
        sys.stdout.write(path + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())