#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: GPL-3.0-or-later
# i18n-generate - Fill missing frontend translations
"""
i18n-generate - Scan a frontend source tree for t('...') strings and fill
the missing entries of src/lang/<code>.json using a chat-completion API.

Supports:
- DeepSeek chat completions (or any OpenAI-compatible endpoint)
- .js, .jsx, .tsx and .vue sources
"""

import argparse
import gettext
import http.client
import json
import os
import re
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from dotenv import find_dotenv, load_dotenv

__version__ = "1.0.0"

# Messages of the tool itself
DOMAIN = "i18n-generate"
LOCALE_DIR = Path(__file__).parent / "locale"
_ = gettext.translation(DOMAIN, LOCALE_DIR, fallback=True).gettext

DEFAULT_API_URL = "https://api.deepseek.com/v1/chat/completions"
DEFAULT_MODEL = "deepseek-chat"

SOURCE_EXTENSIONS = ('.js', '.jsx', '.tsx', '.vue')
SKIP_DIRS = {'node_modules'}

# t('key') or t("key"); no escapes, no interpolation, no empty keys
KEY_PATTERN = re.compile(r"""t\(['"]([^'"]+)['"]\)""")

LANGUAGE_NAMES = {
    'zh': 'Simplified Chinese',
    'en': 'English',
}

ERROR_STRATEGIES = ('keep', 'raise')


class TranslationError(Exception):
    """Raised when a single translation request fails."""


@dataclass
class TranslatorConfig:
    """Connection settings for the chat-completion endpoint."""
    api_key: str = ""
    api_url: str = DEFAULT_API_URL
    model: str = DEFAULT_MODEL
    timeout: float = 30
    temperature: float = 0.3
    max_tokens: int = 100


def load_config(api_url: str = None, model: str = None, env_file: str = None) -> TranslatorConfig:
    """Build the translator configuration from the environment (and .env).

    Explicit arguments win over DEEPSEEK_API_URL / DEEPSEEK_MODEL. Without
    env_file, .env is searched upwards from the working directory.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv(find_dotenv(usecwd=True))

    return TranslatorConfig(
        api_key=os.getenv('DEEPSEEK_API_KEY', ''),
        api_url=api_url or os.getenv('DEEPSEEK_API_URL') or DEFAULT_API_URL,
        model=model or os.getenv('DEEPSEEK_MODEL') or DEFAULT_MODEL,
    )


# === Source scanning ===

def collect_files(root) -> list[str]:
    """Depth-first list of source files under root, skipping node_modules.

    Entries are visited in directory-listing order. OS errors propagate.
    """
    results = []

    for name in os.listdir(root):
        path = os.path.join(root, name)

        if os.path.isdir(path):
            if name not in SKIP_DIRS:
                results.extend(collect_files(path))
        elif name.endswith(SOURCE_EXTENSIONS):
            results.append(path)

    return results


def extract_keys(content: str) -> list[str]:
    """Return the distinct t('...') literals of a file, in first-seen order."""
    keys = {}
    for match in KEY_PATTERN.finditer(content):
        keys.setdefault(match.group(1), None)
    return list(keys)


def extract_file_keys(filepath) -> list[str]:
    # Undecodable bytes become U+FFFD instead of aborting the scan
    with open(filepath, 'r', encoding='utf-8', errors='replace') as f:
        return extract_keys(f.read())


# === Translation tables ===

class TranslationStore:
    """Load and save <lang_dir>/<code>.json translation tables."""

    def __init__(self, lang_dir="src/lang"):
        self.lang_dir = Path(lang_dir)

    def path_for(self, lang_code: str) -> Path:
        return self.lang_dir / f"{lang_code}.json"

    def load(self, lang_code: str) -> dict:
        """Read the table for lang_code; missing or unreadable files give {}."""
        filepath = self.path_for(lang_code)
        if not filepath.exists():
            return {}

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                table = json.load(f)
        except (OSError, ValueError) as e:
            print(_("⚠️ Warning: Could not load existing translations for {lang}: {error}").format(
                lang=lang_code, error=e), file=sys.stderr)
            return {}

        if not isinstance(table, dict):
            print(_("⚠️ Warning: {path} is not a JSON object, ignoring it").format(path=filepath),
                  file=sys.stderr)
            return {}

        return table

    def save(self, lang_code: str, table: dict) -> Path:
        """Overwrite the table for lang_code with 2-space indented JSON."""
        self.lang_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.path_for(lang_code)

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(table, f, indent=2, ensure_ascii=False)

        return filepath


def pending_keys(keys: Iterable[str], table: dict) -> list[str]:
    """Keys absent from table. Any present value, even "", counts as done."""
    return [key for key in keys if key not in table]


# === Translators ===

class Translator:
    """Base translator class."""

    def translate(self, text: str, lang_code: str) -> str:
        raise NotImplementedError


class ChatCompletionTranslator(Translator):
    """Translation via a DeepSeek/OpenAI-style chat completion endpoint."""

    def __init__(self, config: TranslatorConfig, on_error: str = 'keep'):
        if on_error not in ERROR_STRATEGIES:
            raise ValueError(f"Unknown error strategy: {on_error}")
        self.config = config
        self.on_error = on_error

    def system_prompt(self, lang_code: str) -> str:
        target = LANGUAGE_NAMES.get(lang_code, lang_code)
        return (f"You are a professional English to {target} translator. "
                f"Translate the given text to natural {target}. "
                "Only return the translation without any explanations.")

    def build_payload(self, text: str, lang_code: str) -> dict:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": self.system_prompt(lang_code)},
                {"role": "user", "content": text},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": False,
        }

    def request(self, text: str, lang_code: str) -> str:
        """Send one completion request; raise TranslationError on any failure."""
        data = json.dumps(self.build_payload(text, lang_code)).encode()

        try:
            req = urllib.request.Request(
                self.config.api_url,
                data=data,
                headers={
                    'Authorization': f'Bearer {self.config.api_key}',
                    'Content-Type': 'application/json',
                    'User-Agent': f'i18n-generate/{__version__}',
                }
            )
        except ValueError as e:
            raise TranslationError(f"Invalid API URL: {e}") from e

        try:
            response = urllib.request.urlopen(req, timeout=self.config.timeout)
            raw = response.read()
        except urllib.error.HTTPError as e:
            body = e.read().decode(errors='replace')
            raise TranslationError(f"API Error {e.code}: {body}") from e
        except (OSError, http.client.HTTPException) as e:  # URLError, timeouts, truncated reads
            raise TranslationError(f"Network Error: {e}") from e

        try:
            result = json.loads(raw.decode())
        except ValueError as e:
            raise TranslationError(f"Malformed response: {e}") from e

        try:
            return result['choices'][0]['message']['content'].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise TranslationError(f"Malformed response: {result!r}") from e

    def translate(self, text: str, lang_code: str) -> str:
        if lang_code == 'en':
            return text

        try:
            translation = self.request(text, lang_code)
        except TranslationError as e:
            if self.on_error == 'raise':
                raise
            print(f"  ⚠️ {e}", file=sys.stderr)
            return text

        print(f'  ✓ Translated "{text}" to "{translation}"')
        return translation


def rate_limited(items: Iterable, interval: float,
                 sleep: Callable[[float], None] = time.sleep) -> Iterator:
    """Yield items one at a time, sleeping interval seconds between them."""
    first = True
    for item in items:
        if not first and interval > 0:
            sleep(interval)
        first = False
        yield item


# === Orchestration ===

def generate_translations(lang_code: str, translator: Translator, source_dir="src",
                          store: Optional[TranslationStore] = None, delay: float = 1.0,
                          sleep: Callable[[float], None] = time.sleep,
                          dry_run: bool = False) -> dict:
    """Scan source_dir, translate the keys missing for lang_code and save."""
    if store is None:
        store = TranslationStore(os.path.join(source_dir, 'lang'))

    files = collect_files(source_dir)

    all_keys = {}
    for filepath in files:
        for key in extract_file_keys(filepath):
            all_keys.setdefault(key, None)

    existing = store.load(lang_code)
    new_keys = pending_keys(all_keys, existing)

    print(_("🔎 Found {total} total strings in {count} files").format(
        total=len(all_keys), count=len(files)))
    print(_("📝 {count} new strings need translation").format(count=len(new_keys)))
    print(_("📂 Files scanned:"), '\n'.join(files))

    result = {
        'files': files,
        'total': len(all_keys),
        'pending': new_keys,
        'translated': 0,
        'filepath': str(store.path_for(lang_code)),
    }

    if dry_run:
        for key in new_keys:
            print(f"  • {key}")
        print(_("🔍 Dry run: would save {path}").format(path=result['filepath']))
        return result

    translations = dict(existing)
    for key in rate_limited(new_keys, delay, sleep):
        translations[key] = translator.translate(key, lang_code)
        result['translated'] += 1

    filepath = store.save(lang_code, translations)
    print(_("💾 Generated translations at {path}").format(path=filepath))

    return result


def print_usage():
    print(_("Please specify a language code"), file=sys.stderr)
    print(_("Usage: i18n-generate <lang-code>"), file=sys.stderr)
    print(_("Example: i18n-generate jp"), file=sys.stderr)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description=_('i18n-generate - Fill missing frontend translations'),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_("""
Examples:
  # Translate new strings in ./src into Chinese
  i18n-generate zh

  # Show what would be translated
  i18n-generate --dry-run jp

  # Abort on the first failed request
  i18n-generate --strict zh

Environment:
  DEEPSEEK_API_KEY   API key (may be set in .env)
  DEEPSEEK_API_URL   Chat completion endpoint override
  DEEPSEEK_MODEL     Model override
        """)
    )

    parser.add_argument('lang', nargs='?', help=_('Target language code (e.g., zh, jp)'))
    parser.add_argument('--source-dir', default='src', help=_('Source directory to scan (default: src)'))
    parser.add_argument('--lang-dir', help=_('Translation directory (default: <source-dir>/lang)'))
    parser.add_argument('--delay', type=float, default=1.0, help=_('Seconds between API calls (default: 1.0)'))
    parser.add_argument('--model', help=_('Model name (default: deepseek-chat)'))
    parser.add_argument('--api-url', help=_('Chat completion endpoint'))
    parser.add_argument('--env-file', help=_('Read environment from this file instead of .env'))
    parser.add_argument('--strict', action='store_true', help=_('Abort on the first failed translation'))
    parser.add_argument('--dry-run', action='store_true', help=_("Don't call the API or save changes"))
    parser.add_argument('-v', '--version', action='version', version=f'%(prog)s {__version__}')

    args = parser.parse_args(argv)

    if not args.lang:
        print_usage()
        sys.exit(1)

    config = load_config(api_url=args.api_url, model=args.model, env_file=args.env_file)
    if not config.api_key and args.lang != 'en' and not args.dry_run:
        print(_("⚠️ Warning: DEEPSEEK_API_KEY is not set"), file=sys.stderr)

    translator = ChatCompletionTranslator(config, on_error='raise' if args.strict else 'keep')
    store = TranslationStore(args.lang_dir or os.path.join(args.source_dir, 'lang'))

    try:
        generate_translations(
            args.lang,
            translator,
            source_dir=args.source_dir,
            store=store,
            delay=args.delay,
            dry_run=args.dry_run
        )
    except Exception as e:
        print(_("❌ Error: {error}").format(error=e), file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
