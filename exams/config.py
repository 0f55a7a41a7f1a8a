"""
Parsing of the legacy test configuration blob.

Older records kept the test settings and questions as a JSON string in the
first slot of an ``attachments`` list. Tests now store that configuration in
columns; this module is only used when such records are imported.
"""
import copy
import json
import logging

logger = logging.getLogger(__name__)

DEFAULT_TEST_CONFIG = {
    'duration': 60,
    'questions': [],
    'allowRetake': False,
    'showResultsImmediately': True,
    'shuffleQuestions': False,
    'shuffleOptions': False,
}


def default_test_config():
    return copy.deepcopy(DEFAULT_TEST_CONFIG)


def parse_test_config(raw):
    """
    Return the configuration dict stored in ``raw``.

    ``raw`` may be a JSON string, an ``attachments`` list whose first item is
    that string, or ``None``. Anything that does not decode to a JSON object
    yields the default configuration. Missing keys are filled from the defaults.
    """
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    if raw is None:
        return default_test_config()

    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Error parsing test config, using defaults: %s", e)
        return default_test_config()

    if not isinstance(parsed, dict):
        logger.warning("Test config is not an object (%s), using defaults", type(parsed).__name__)
        return default_test_config()

    config = default_test_config()
    config.update(parsed)
    if not isinstance(config['questions'], list):
        config['questions'] = []
    return config


def normalize_question(raw, index):
    """Fill in the legacy per-question defaults (``q_<n>`` ids, objective type, 1 mark)."""
    options = raw.get('options') or None
    return {
        'id': raw.get('id') or f"q_{index + 1}",
        'order': index + 1,
        'type': raw.get('type') or 'objective',
        'question': raw.get('question') or '',
        'marks': raw.get('marks') or 1,
        'options': options,
        'correctAnswer': raw.get('correctAnswer'),
        'explanation': raw.get('explanation') or '',
        'sampleAnswer': raw.get('sampleAnswer') or '',
    }
