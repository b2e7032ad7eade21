#!/usr/bin/env python3
"""
Codeforces Upsolve Tracker
Main entry point for the application

This module provides:
- Command-line argument parsing
- Logging configuration
- Application settings (JSON) and configuration (INI)
- Wiring of the scrapers, the API client and the problem store
- Graceful shutdown
"""

__version__ = "1.0.0"
__license__ = "MIT"
__description__ = "Find Codeforces problems worth upsolving and scrape their statements"

import sys
import os
import argparse
import logging
import json
import signal
import atexit
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional
import configparser
import platform

from scraper.browser import BrowserConfig, BrowserSessionManager, DEFAULT_USER_AGENT
from scraper.codeforces_api import CodeforcesAPI
from scraper.problem_extractor import ProblemExtractor
from scraper.upsolve_resolver import UpsolveResolver, DEFAULT_CONTEST_DELAY
from utils.error_handler import (
    UpsolveError, ConfigurationError, StorageError, ErrorCategory, ErrorInfo, ErrorSeverity,
    error_reporter
)
from utils.problem_store import ProblemStore
from utils.rate_limiter import RateLimiter


class ApplicationManager:
    """
    Handles configuration, logging and lifecycle of the upsolve tracker, and
    runs the individual commands.
    """

    def __init__(self, config_dir: Optional[Path] = None, log_level: Optional[str] = None):
        self.config_dir = Path(config_dir) if config_dir else Path.home() / ".upsolve_tracker"
        self.config_file = self.config_dir / "config.ini"
        self.log_file = self.config_dir / "app.log"
        self.settings_file = self.config_dir / "settings.json"

        self.config = configparser.ConfigParser()
        self.rate_limiter = None
        self.api = None
        self.browser_manager = None
        self.resolver = None
        self.extractor = None
        self.store = None

        self.is_running = False

        self.default_settings = {
            "log_level": "INFO",
            "auto_save_settings": True,
        }
        self.settings = self.default_settings.copy()
        self.log_level_override = log_level

    def initialize(self):
        """
        Initialize the application with all necessary configurations.
        """
        try:
            self._create_config_directory()
            self._load_settings()
            self._load_configuration()
            self._setup_logging()
            self._initialize_components()
            self._setup_signal_handlers()
            atexit.register(self.shutdown)

            self.is_running = True
            logging.info("Application initialized successfully")

        except Exception as e:
            logging.error(f"Failed to initialize application: {e}")
            logging.error(traceback.format_exc())
            raise

    def _create_config_directory(self):
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logging.error(f"Failed to create config directory: {e}")
            # Fallback to current directory
            self.config_dir = Path.cwd() / ".upsolve_tracker"
            self.config_dir.mkdir(exist_ok=True)
            self.log_file = self.config_dir / "app.log"
            self.settings_file = self.config_dir / "settings.json"

    def _setup_logging(self):
        """
        Configure logging with file and console handlers.
        """
        log_level = getattr(logging, str(self.settings.get("log_level", "INFO")).upper(), logging.INFO)

        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
        )
        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.handlers.clear()

        try:
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(detailed_formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging: {e}", file=sys.stderr)

        # Results go to stdout, so log lines go to stderr
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(simple_formatter)
        root_logger.addHandler(console_handler)

        logging.info(f"Logging configured. Level: {logging.getLevelName(log_level)}, Log file: {self.log_file}")

    def _load_settings(self):
        """
        Load application settings from JSON file.
        """
        try:
            if self.settings_file.exists():
                with open(self.settings_file, 'r', encoding='utf-8') as f:
                    self.settings.update(json.load(f))
                logging.debug("Settings loaded successfully")
        except (OSError, ValueError) as e:
            logging.warning(f"Failed to load settings: {e}. Using defaults.")
        if self.log_level_override:
            self.settings["log_level"] = self.log_level_override

    def _save_settings(self):
        try:
            if self.settings.get("auto_save_settings", True):
                with open(self.settings_file, 'w', encoding='utf-8') as f:
                    json.dump(self.settings, f, indent=2, ensure_ascii=False)
                logging.debug("Settings saved successfully")
        except OSError as e:
            logging.error(f"Failed to save settings: {e}")

    def _load_configuration(self):
        """
        Load configuration from INI file, creating it with defaults when missing.
        """
        self._apply_default_configuration()
        try:
            if self.config_file.exists():
                self.config.read(self.config_file, encoding='utf-8')
                logging.debug("Configuration loaded successfully")
            else:
                self._write_configuration()
        except configparser.Error as e:
            logging.warning(f"Failed to load configuration: {e}")

    def _apply_default_configuration(self):
        self.config['DEFAULT'] = {
            'timeout': '20',
            'page_load_timeout': '30',
            'contest_delay': str(DEFAULT_CONTEST_DELAY),
            'min_interval': '2.0',
            'max_concurrent': '1',
            'headless_browser': 'true',
        }

        self.config['Browser'] = {
            'environment': 'local',
            'bundled_binary': '',
            'user_agent': DEFAULT_USER_AGENT,
        }

        self.config['Paths'] = {
            'store_file': str(self.config_dir / "store.json"),
        }

    def _write_configuration(self):
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                self.config.write(f)
            logging.info("Default configuration created")
        except OSError as e:
            logging.error(f"Failed to create default configuration: {e}")

    def browser_config(self) -> BrowserConfig:
        """Browser settings; ``UPSOLVE_ENV`` wins over the configured environment."""
        environment = os.environ.get("UPSOLVE_ENV") or self.config.get('Browser', 'environment', fallback='local')
        environment = environment.strip().lower()
        if environment not in ("local", "serverless"):
            raise ConfigurationError(f"Unknown browser environment: {environment}")

        return BrowserConfig(
            environment=environment,
            headless=self.config.getboolean('DEFAULT', 'headless_browser', fallback=True),
            page_load_timeout=self.config.getfloat('DEFAULT', 'page_load_timeout', fallback=30.0),
            wait_timeout=self.config.getfloat('DEFAULT', 'timeout', fallback=20.0),
            user_agent=self.config.get('Browser', 'user_agent', fallback=DEFAULT_USER_AGENT),
            bundled_binary=self.config.get('Browser', 'bundled_binary', fallback='') or None,
        )

    def _initialize_components(self):
        """
        Initialize all application components.
        """
        timeout = self.config.getfloat('DEFAULT', 'timeout', fallback=20.0)

        self.rate_limiter = RateLimiter(
            min_interval=self.config.getfloat('DEFAULT', 'min_interval', fallback=2.0),
            max_concurrent=self.config.getint('DEFAULT', 'max_concurrent', fallback=1),
        )
        self.api = CodeforcesAPI(rate_limiter=self.rate_limiter)
        self.browser_manager = BrowserSessionManager(self.browser_config())

        def session_factory(javascript_enabled=True):
            return self.browser_manager.acquire(javascript_enabled=javascript_enabled)

        self.resolver = UpsolveResolver(
            api=self.api,
            session_factory=session_factory,
            rate_limiter=self.rate_limiter,
            timeout=timeout,
            contest_delay=self.config.getfloat('DEFAULT', 'contest_delay', fallback=DEFAULT_CONTEST_DELAY),
        )
        self.extractor = ProblemExtractor(
            session_factory=session_factory,
            rate_limiter=self.rate_limiter,
            timeout=timeout,
        )
        logging.info("All components initialized successfully")

    def open_store(self, path: Optional[str] = None) -> ProblemStore:
        store_path = path or self.config.get('Paths', 'store_file', fallback=str(self.config_dir / "store.json"))
        self.store = ProblemStore(store_path)
        return self.store

    def _setup_signal_handlers(self):
        def signal_handler(signum, frame):
            logging.info(f"Received signal {signum}, initiating graceful shutdown...")
            self.shutdown()
            sys.exit(130)

        if platform.system() != 'Windows':
            signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    def resolve_handle(self, handle: str, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        candidates = self.resolver.resolve_upsolve_set(handle)
        if user_id:
            self.store.upsert_candidates(user_id, candidates)
        return [candidate.to_record() for candidate in candidates]

    def sync_submissions(self, handle: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        sync = self.resolver.resolve_from_submissions(handle)
        if user_id:
            self.store.upsert_candidates(user_id, sync.candidates)
            self.store.remove_questions(user_id, sync.solved_ids)
        return {
            "candidates": [candidate.to_record() for candidate in sync.candidates],
            "solved": sync.solved_ids,
        }

    def extract_url(self, url: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        if user_id:
            problem = self.api.problem_details(url)
            try:
                self.store.add_question(user_id, problem)
                logging.info(f"Added {problem.question_id} to the list of {user_id}")
            except StorageError as e:
                logging.warning(str(e))
            return self.store.get_statement(problem.question_id, self.extractor).to_dict()
        return self.extractor.extract_problem(url).to_dict()

    def extract_question(self, question_id: str, force: bool = False) -> Dict[str, Any]:
        if self.store is not None:
            return self.store.get_statement(question_id, self.extractor, force=force).to_dict()
        return self.extractor.extract_question(question_id).to_dict()

    def _handle_error(self, error: Exception, context: str):
        """Log an error and record it with the error reporter."""
        logging.error(f"{context}: {error}")
        logging.debug(traceback.format_exc())
        if not isinstance(error, UpsolveError):
            error_reporter.report_error(ErrorInfo(
                message=str(error),
                category=ErrorCategory.UNKNOWN,
                severity=ErrorSeverity.HIGH,
                original_exception=error,
                traceback_str=traceback.format_exc(),
            ), {"context": context})

    def shutdown(self):
        """
        Graceful shutdown of the application.
        """
        if not self.is_running:
            return

        logging.info("Initiating application shutdown...")
        self.is_running = False

        self._save_settings()
        if self.api is not None:
            self.api.session.close()

        summary = error_reporter.get_error_summary()
        if summary.get("total_errors"):
            logging.info(f"Errors during this run: {summary['total_errors']} {summary['categories']}")
        logging.info("Application shutdown completed")


def parse_arguments(argv: Optional[List[str]] = None):
    """
    Parse command line arguments.

    Returns:
        argparse.Namespace: Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Codeforces Upsolve Tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --handle tourist                          # Upsolve candidates from contest history
  %(prog)s --handle tourist --user-id me             # ... and store them in my list
  %(prog)s --submissions tourist --user-id me        # Sync the list with recent submissions
  %(prog)s --url "https://codeforces.com/problemset/problem/4/A"
  %(prog)s --question-id 4_A --user-id me --force    # Re-scrape a cached statement
        """
    )

    command = parser.add_mutually_exclusive_group(required=True)
    command.add_argument('--handle', type=str, help='Resolve upsolve candidates for a Codeforces handle')
    command.add_argument('--submissions', type=str, metavar='HANDLE',
                         help='Sync unsolved problems from the submission history of a handle')
    command.add_argument('--url', '-u', type=str, help='Scrape the statement of a problem URL')
    command.add_argument('--question-id', type=str, help='Scrape the statement of a {contestId}_{index} key')

    parser.add_argument('--user-id', type=str, help='Persist results in the list of this user')
    parser.add_argument('--store', type=str, help='Path of the JSON store file')
    parser.add_argument('--force', action='store_true', help='Re-scrape even when a statement is cached')
    parser.add_argument('--output', '-o', type=str, help='Write the JSON result to this file instead of stdout')
    parser.add_argument(
        '--log-level', '-l',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Set logging level'
    )
    parser.add_argument('--config', '-c', type=str, help='Path to custom configuration file')
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')

    return parser.parse_args(argv)


def write_output(result: Any, output: Optional[str] = None):
    payload = json.dumps(result, indent=2, ensure_ascii=False)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload + "\n", encoding='utf-8')
        logging.info(f"Result written to {path}")
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function of the Codeforces Upsolve Tracker.
    """
    args = parse_arguments(argv)
    app_manager = ApplicationManager(log_level=args.log_level)

    try:
        if args.config:
            app_manager.config_file = Path(args.config)
        app_manager.initialize()

        if args.user_id or args.store or args.question_id:
            app_manager.open_store(args.store)

        if args.handle:
            result = app_manager.resolve_handle(args.handle, args.user_id)
        elif args.submissions:
            result = app_manager.sync_submissions(args.submissions, args.user_id)
        elif args.url:
            result = app_manager.extract_url(args.url, args.user_id)
        else:
            result = app_manager.extract_question(args.question_id, force=args.force)

        write_output(result, args.output)
        return 0

    except KeyboardInterrupt:
        logging.info("Application interrupted by user")
        return 130

    except (UpsolveError, ValueError) as e:
        app_manager._handle_error(e, "Command failed")
        return 1

    except Exception as e:
        app_manager._handle_error(e, "Fatal application error")
        return 1

    finally:
        app_manager.shutdown()


if __name__ == "__main__":
    sys.exit(main())
