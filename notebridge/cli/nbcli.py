import json
import logging
import os
import pathlib
import sys
import time
from datetime import datetime
from getpass import getpass
from pathlib import Path

import keyring
import schedule

from notebridge import helpers

import argparse

from notebridge.sync.controller import SyncController


class NoteBridgeCli:
    """
    Defines the functionality of the NoteBridge CLI.
    """

    #: Keyring service and key under which the WebDAV password is stored.
    KEYRING_SERVICE = "NoteBridge"
    KEYRING_KEY = "WEBDAV-PWD"

    DEFAULT_SETTINGS = {
        'webdav_url': '',
        'webdav_username': '',
        'remote_root': 'notebridge',
        'timeout': 30,
        'max_retries': 3,
        'cleanup_trash': '0',
        'empty_trash': '0',
        'trash_retention_days': 30,
        'log_level': 'info',
        'autosync': '0',
        'autosync_interval': 0,
        'autosync_unit': 'Minutes'
    }

    SETTINGS = dict(DEFAULT_SETTINGS)

    def __init__(self, args):
        self.args = args
        NoteBridgeCli.SETTINGS = dict(NoteBridgeCli.DEFAULT_SETTINGS)
        self.logger = self.setup_logging()
        self.apply_settings()
        if NoteBridgeCli.preflight_sync() and self.authenticate_webdav():
            NoteBridgeCli.configure_controller()
            if NoteBridgeCli.SETTINGS['autosync'] == '1':
                NoteBridgeCli.run_autosync()
            else:
                NoteBridgeCli.sync_notes()
        logging.info("Synchronisation tasks completed")

    @staticmethod
    def preflight_sync() -> bool:
        """
        Perform pre-flight checks for note synchronisation. This includes ensuring a WebDAV URL and username have been
        set, and that the autosync interval is valid if autosync is enabled.

        :return: True if all pre-flight checks are successful.
        """
        if NoteBridgeCli.SETTINGS['webdav_url'] == '':
            logging.critical(
                'WebDAV URL missing. Use --webdav-url to specify or add "webdav_url" to configuration file.')
            sys.exit(4)
        elif NoteBridgeCli.SETTINGS['webdav_username'] == '':
            logging.critical(
                'WebDAV username missing. Use --webdav-username to specify or add "webdav_username" to configuration '
                'file.')
            sys.exit(4)
        elif NoteBridgeCli.SETTINGS['autosync'] == '1' and int(NoteBridgeCli.SETTINGS['autosync_interval']) <= 0:
            logging.critical(
                'Autosync interval missing. Use --autosync-interval to specify or add "autosync_interval" to '
                'configuration file.')
            sys.exit(4)
        return True

    def authenticate_webdav(self) -> bool:
        """
        Loads the WebDAV password. If the --webdav-password option is used, this method will ask for a password
        regardless of whether one is saved. If no password is saved, the CLI exits with an error.

        :return: True on finding or receiving a WebDAV password.
        """

        if 'webdav_password' in self.args:
            # User specifically wants to be asked for password
            new_password = getpass('WebDAV Password> ')
            keyring.set_password(NoteBridgeCli.KEYRING_SERVICE, NoteBridgeCli.KEYRING_KEY, new_password)
            return True

        # Check if password is in keyring
        password = keyring.get_password(NoteBridgeCli.KEYRING_SERVICE, NoteBridgeCli.KEYRING_KEY)
        if password is None:
            logging.critical('No WebDAV Password in keyring. Use --webdav-password to be prompted for a password.')
            sys.exit(3)
        return True

    @staticmethod
    def configure_controller() -> None:
        SyncController.WEBDAV_URL = NoteBridgeCli.SETTINGS['webdav_url']
        SyncController.WEBDAV_USERNAME = NoteBridgeCli.SETTINGS['webdav_username']
        SyncController.WEBDAV_PASSWORD = keyring.get_password(NoteBridgeCli.KEYRING_SERVICE, NoteBridgeCli.KEYRING_KEY)
        SyncController.REMOTE_ROOT = NoteBridgeCli.SETTINGS['remote_root']
        SyncController.TIMEOUT = float(NoteBridgeCli.SETTINGS['timeout'])
        SyncController.MAX_RETRIES = int(NoteBridgeCli.SETTINGS['max_retries'])
        SyncController.ENGINE = None

    @staticmethod
    def sync_notes(exit_on_failure: bool = True) -> bool:
        """
        Calls the various controller methods to perform note synchronisation. If any stage fails, an error message is
        logged and, unless running on a schedule, the CLI exits with a status code.

        :param exit_on_failure: if true, exit the CLI when a stage fails.
        :return: True if all stages succeeded.
        """

        if NoteBridgeCli.SETTINGS['empty_trash'] == '1':
            logging.info("Emptying trash...")
            success, data = SyncController.empty_trash()
            if not success:
                return NoteBridgeCli.fail("Error emptying trash.", 5, exit_on_failure)
        elif NoteBridgeCli.SETTINGS['cleanup_trash'] == '1':
            logging.info("Cleaning up trash...")
            success, data = SyncController.cleanup_trash(int(NoteBridgeCli.SETTINGS['trash_retention_days']))
            if not success:
                return NoteBridgeCli.fail("Error cleaning up trash.", 5, exit_on_failure)

        logging.info("Synchronising notes...")
        success, data = SyncController.sync_notes(logging.info)
        if not success:
            return NoteBridgeCli.fail("Failed to synchronise notes: {}".format(data), 6, exit_on_failure)

        logging.info("Note synchronisation completed successfully.")
        return True

    @staticmethod
    def fail(error: str, code: int, exit_on_failure: bool) -> bool:
        logging.critical(error)
        if exit_on_failure:
            sys.exit(code)
        return False

    @staticmethod
    def autosync_seconds() -> int:
        """
        Get the autosync interval in seconds.

        :return: the interval between two scheduled synchronisations.
        """
        multipliers = {
            'Minutes': 60,
            'Hours': 3600
        }
        interval = int(NoteBridgeCli.SETTINGS['autosync_interval'])
        return interval * multipliers.get(NoteBridgeCli.SETTINGS['autosync_unit'], 60)

    @staticmethod
    def run_autosync(max_cycles: int | None = None) -> None:
        """
        Synchronise now, then keep synchronising at the configured interval until interrupted. A failed run is logged
        and retried at the next interval.

        :param max_cycles: stop after this many cycles of the scheduler, used by tests.
        """
        seconds = NoteBridgeCli.autosync_seconds()
        schedule.clear()
        schedule.every(seconds).seconds.do(NoteBridgeCli.sync_notes, exit_on_failure=False)
        logging.info("Autosync enabled, synchronising every {} seconds.".format(seconds))
        NoteBridgeCli.sync_notes(exit_on_failure=False)

        cycles = 0
        try:
            while max_cycles is None or cycles < max_cycles:
                schedule.run_pending()
                time.sleep(1)
                cycles += 1
        except KeyboardInterrupt:
            logging.info("Autosync stopped.")
        finally:
            schedule.clear()

    def apply_settings(self) -> None:
        """
        Load settings from the configuration file, This is normally in ~/.notebridge/conf.json, but may be overridden
        with the --config option. Any configuration options specified via command-line options will override the values
        in the configuration file.
        """

        # Load settings from file
        if 'config' in self.args:
            # Load settings from custom configuration file
            if os.path.exists(self.args.config):
                conf_file = self.args.config
                self.logger.info('Using custom config file: {}'.format(conf_file))
            else:
                self.logger.critical('Configuration file {} not found.'.format(self.args.config))
                sys.exit(2)
        else:
            # Load settings from default configuration file
            conf_file = helpers.settings_folder() / 'conf.json'
            self.logger.info('Using default config file: {}'.format(conf_file))

        NoteBridgeCli.merge_settings(conf_file)

        # Override settings from command line arguments
        self.override_config()

        logging.debug("Settings in use: {}".format(json.dumps(NoteBridgeCli.SETTINGS, indent=2, default=str)))

    @staticmethod
    def merge_settings(conf_file: str | Path) -> None:
        """
        Override any of the default settings of the NoteBridge CLI with settings found in a configuration file.
        """

        if os.path.exists(conf_file):
            with open(conf_file) as fp:
                try:
                    loaded_settings = json.loads(fp.read())
                except json.decoder.JSONDecodeError:
                    logging.critical("Your configuration file at {} is invalid. Please check syntax.".format(conf_file))
                    sys.exit(20)
            for key in NoteBridgeCli.SETTINGS.keys():
                if key in loaded_settings:
                    NoteBridgeCli.SETTINGS[key] = loaded_settings[key]

    def override_config(self) -> None:
        """
        Override any settings (default or from configuration file) which have been specified as command-line options.
        """

        vargs = vars(self.args)
        for key in NoteBridgeCli.SETTINGS.keys():
            if key in vargs:
                NoteBridgeCli.SETTINGS[key] = vargs[key]

    def setup_logging(self) -> logging.Logger:
        """
        Sets up the logging system.

        :return: the logging helper for the CLI.
        """

        if 'log_dir' in self.args:
            if os.access(self.args.log_dir, os.W_OK | os.X_OK):
                log_folder = Path(self.args.log_dir)
            else:
                print("Specified log directory {} is not accessible.".format(self.args.log_dir))
                sys.exit(1)
        else:
            log_folder = helpers.log_folder()

        log_file = datetime.now().strftime("NoteBridge_%Y%m%d-%H%M%S") + '.log'
        log_levels = {
            'debug': logging.DEBUG,
            'info': logging.INFO,
            'warning': logging.WARNING,
            'critical': logging.CRITICAL
        }
        log_level = log_levels[self.args.log_level]

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s %(levelname)s: %(message)s',
        )
        logging.getLogger().addHandler(logging.FileHandler(log_folder / log_file))
        return logging.getLogger()


def build_parser() -> argparse.ArgumentParser:
    """
    Defines arguments accepted by the CLI.
    """

    parser = argparse.ArgumentParser(
        prog="NoteBridge CLI",
        description="Synchronise your local notes and attachments with a WebDAV server.",
    )

    # Sync options
    parser.add_argument(
        "--webdav-url",
        type=str,
        default=argparse.SUPPRESS,
        help="specify the base URL of the WebDAV server.")
    parser.add_argument(
        "--webdav-username",
        type=str,
        default=argparse.SUPPRESS,
        help="specify username for the WebDAV server.")
    parser.add_argument(
        "--webdav-password",
        default=argparse.SUPPRESS,
        action='store_true',
        help="prompt for WebDAV password.")
    parser.add_argument(
        "--remote-root",
        type=str,
        default=argparse.SUPPRESS,
        help="specify the remote folder where notes and attachments are stored.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=argparse.SUPPRESS,
        help="specify the request timeout in seconds.")
    parser.add_argument(
        "--max-retries",
        type=int,
        default=argparse.SUPPRESS,
        help="specify how many times a failed request is retried.")
    parser.add_argument(
        "--cleanup-trash",
        type=str,
        choices=['0', '1'],
        default=argparse.SUPPRESS,
        help="set to 1 to erase notes which have been in the trash longer than the retention window before syncing.")
    parser.add_argument(
        "--empty-trash",
        type=str,
        choices=['0', '1'],
        default=argparse.SUPPRESS,
        help="set to 1 to erase every note in the trash before syncing.")
    parser.add_argument(
        "--trash-retention-days",
        type=int,
        default=argparse.SUPPRESS,
        help="specify how many days notes stay in the trash.")
    parser.add_argument(
        "--autosync",
        type=str,
        choices=['0', '1'],
        default=argparse.SUPPRESS,
        help="set to 1 to keep synchronising at a fixed interval.")
    parser.add_argument(
        "--autosync-interval",
        type=int,
        default=argparse.SUPPRESS,
        help="specify the autosync interval.")
    parser.add_argument(
        "--autosync-unit",
        type=str,
        choices=['Minutes', 'Hours'],
        default=argparse.SUPPRESS,
        help="specify the unit of the autosync interval.")

    # Cli-specific options
    parser.add_argument(
        "--config",
        type=pathlib.Path,
        default=argparse.SUPPRESS,
        help="use to provide a path to a custom configuration file.")
    parser.add_argument(
        "--log-dir",
        type=pathlib.Path,
        default=argparse.SUPPRESS,
        help="specify a custom directory to use for logging.")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=['debug', 'info', 'critical', 'warning'],
        default='info',
        help="specify the logging level.")
    return parser


def main():
    NoteBridgeCli(build_parser().parse_args())


if __name__ == "__main__":
    main()
