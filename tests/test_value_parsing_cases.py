import json
import logging
import re
import unittest
from collections import namedtuple
from itertools import islice
from pathlib import Path
from typing import Iterable, List

import valueparser

logger = logging.getLogger(__name__)

VALUE_PARSING_TESTS_DIR = Path(__file__).parent / "value-parsing-tests"

JSONCase = namedtuple("JSONCase", "case, expectation")


def pairs(iterable):
    "s -> (s0,s1), (s2,s3), (s4, s5), ..."
    return zip(
        islice(iterable, 0, None, 2),
        islice(iterable, 1, None, 2),
    )


class ValueParseTestCaseMeta(type):
    """Metaclass for dynanic test loading"""

    @classmethod
    def __prepare__(cls, clsname, bases, **kwargs):
        namespace = dict()

        if not "cases" in kwargs or unittest.TestCase not in bases:
            logger.warning(
                f"Class `{clsname}` should specify cases as intialize argument and must base unittest.TestCase, nothing loaded"
            )
            return namespace

        namespace["cases"] = list(cls.load_cases(kwargs["cases"]))

        for idx, case in enumerate(namespace["cases"]):
            name, fn = cls.create_test(idx, case)
            namespace[name] = fn

        return namespace

    def __new__(cls, name, bases, namespace, **kwargs):
        kwargs.pop("cases")  # Already processd this in the __prepare__
        return super().__new__(cls, name, bases, namespace, **kwargs)

    @classmethod
    def load_cases(cls, name) -> Iterable[JSONCase]:
        json_path = (VALUE_PARSING_TESTS_DIR / name).with_suffix(".json")
        assert json_path.exists(), f"JSON cases file does not exists: {json_path}."
        with json_path.open("rb") as fd:
            raw_cases = json.load(fd)

        return map(JSONCase._make, pairs(raw_cases))

    @staticmethod
    def create_test(idx, case: JSONCase):
        def inner(self):
            self.run_case(case.case, case.expectation)

        case_str = re.sub(r"[^\w]+", "_", case.case).strip("_").strip()
        if case_str:
            return f"test_{idx:03}_{case_str}", inner
        else:
            return f"test_{idx:03}", inner


class SegmentationTestCase(
    unittest.TestCase,
    metaclass=ValueParseTestCaseMeta,
    cases="segmentation",
):
    def run_case(self, case: str, expectation: List[str]):
        parsed = valueparser.parse(case)

        self.assertListEqual([node.type for node in parsed.nodes], expectation)
        self.assertEqual(
            str(parsed), case, f"Stringified `{parsed}` instead of `{case}`"
        )
