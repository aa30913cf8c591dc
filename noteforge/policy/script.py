"""
Page script runtime.

A page script is Python source compiled once per run and executed once per
page in a fresh namespace. The namespace is the whole capability surface:
``page``, ``autotag``, the policy enums, ``UNBOUNDED``, ``settings`` and
``log``. A callable can stand in for a script file; it receives the same
names as keyword arguments.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..errors import ScriptExecutionError


script_logger = logging.getLogger("noteforge.script")


class PageScript:
    """
    A compiled page script.
    """

    def __init__(
        self,
        code: Optional[Any] = None,
        name: str = "<script>",
        func: Optional[Callable[..., None]] = None
    ):
        self.code = code
        self.name = name
        self.func = func

    @classmethod
    def from_source(cls, source: str, name: str = "<script>") -> "PageScript":
        """
        Compile script source.

        Raises:
            SyntaxError: If the script does not compile
        """
        return cls(code=compile(source, name, "exec"), name=name)

    @classmethod
    def from_file(cls, path: str) -> "PageScript":
        script_path = Path(path)
        with open(script_path, 'r', encoding='utf-8') as f:
            source = f.read()
        logging.info(f"Compiled page script {script_path}")
        return cls.from_source(source, name=str(script_path))

    @classmethod
    def from_callable(cls, func: Callable[..., None], name: Optional[str] = None) -> "PageScript":
        return cls(func=func, name=name or getattr(func, "__name__", "<callable>"))

    def run(self, page_id: str, namespace: Dict[str, Any]) -> None:
        """
        Execute the script for one page.

        Args:
            page_id: Id of the page, for error reporting
            namespace: Names visible to the script

        Raises:
            ScriptExecutionError: If the script raises anything
        """
        env = dict(namespace)
        env["log"] = script_logger
        try:
            if self.func is not None:
                self.func(**env)
            else:
                env["__name__"] = "__noteforge_script__"
                exec(self.code, env)
        except Exception as e:
            raise ScriptExecutionError(page_id, f"{type(e).__name__}: {e}") from e
