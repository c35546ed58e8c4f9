"""
LaTeX formula backend.

Renders a math formula in three stages:
    latex   (code.tex -> code.dvi)
    dvips   (code.dvi -> code.ps, cropped to the bounding box with -E)
    convert (code.ps  -> final raster image)

Scratch files, including the image itself until it is complete, live in
"<output_path>-tmp/". The directory is removed once rendering finishes; with
debug enabled it is kept after a failure for inspection.
"""

import os
import shlex
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from dotenv import load_dotenv
from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

from imaginator.contexts.rendering.base import Renderer, run_stage
from imaginator.contexts.rendering.exceptions import ValidationError
from imaginator.contexts.rendering.logger import _log_debug, _log_warning

load_dotenv()
LATEX_COMPILER = os.getenv("LATEX_COMPILER", "latex")
DVIPS = os.getenv("DVIPS", "dvips")
CONVERT = os.getenv("CONVERT", "convert")
KEEP_LATEX_ARTIFACTS = os.getenv("KEEP_LATEX_ARTIFACTS", "false").lower() == "true"

TEMPLATES_PATH = Path(__file__).parent / "templates"

DEFAULT_CONVERT_OPTS = "-trim -density 120"

# Literal substrings that are never allowed in a formula. Matching is
# case-sensitive and purely textual.
DEFAULT_BLACKLIST = [
    "include",
    "def",
    "command",
    "loop",
    "repeat",
    "open",
    "toks",
    "output",
    "input",
    "catcode",
    "name",
    r"\every",
    r"\errhelp",
    r"\errorstopmode",
    r"\scrollmode",
    r"\nonstopmode",
    r"\batchmode",
    r"\read",
    r"\write",
    "csname",
    r"\newhelp",
    r"\uppercase",
    r"\lowercase",
    r"\relax",
    r"\aftergroup",
    r"\afterassignment",
    r"\expandafter",
    r"\noexpand",
    r"\special",
    "$$",
]

# (package, options) pairs; each is loaded only if the .sty file is installed
DEFAULT_PACKAGES = [
    ("inputenc", "utf8"),
    ("amsmath", None),
    ("amsfonts", None),
    ("amssymb", None),
    ("mathrsfs", None),
    ("esdiff", None),
    ("cancel", None),
    ("color", "dvips,usenames"),
    ("nicefrac", None),
    ("siunitx", "fraction=nice"),
    ("mathpazo", None),
]

# Jinja2 environment with delimiters that cannot clash with LaTeX braces
_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_PATH)),
    undefined=StrictUndefined,
    variable_start_string="<<<",
    variable_end_string=">>>",
    block_start_string="<%%",
    block_end_string="%%>",
    comment_start_string="<#",
    comment_end_string="#>",
    trim_blocks=True,
    lstrip_blocks=False,
    keep_trailing_newline=True,
)


class LaTeXRenderer(Renderer):
    """
    Renders LaTeX math to an image via latex, dvips and ImageMagick convert.

    Args:
        format: Output image format (default: "png")
        convert_opts: Options for convert, as a string or list (default: "-trim -density 120")
        debug: Keep the scratch directory when a render fails
        blacklist: Forbidden literal substrings (default: DEFAULT_BLACKLIST)
        packages: (package, options) pairs loaded in the document preamble
        latex_cmd, dvips_cmd, convert_cmd: Executables for each stage
    """

    def __init__(
        self,
        format: str = "png",
        convert_opts: Union[str, Sequence[str]] = DEFAULT_CONVERT_OPTS,
        debug: bool = KEEP_LATEX_ARTIFACTS,
        blacklist: Optional[Iterable[str]] = None,
        packages: Optional[Sequence[Sequence[Optional[str]]]] = None,
        latex_cmd: str = LATEX_COMPILER,
        dvips_cmd: str = DVIPS,
        convert_cmd: str = CONVERT,
        template_name: str = "formula.tex.jinja",
    ):
        self._format = format
        if isinstance(convert_opts, str):
            convert_opts = shlex.split(convert_opts)
        self.convert_opts: List[str] = list(convert_opts)
        self.debug = debug
        self.blacklist: List[str] = list(DEFAULT_BLACKLIST if blacklist is None else blacklist)
        self.packages = [
            (p, None) if isinstance(p, str) else tuple(p)
            for p in (DEFAULT_PACKAGES if packages is None else packages)
        ]
        self.latex_cmd = latex_cmd
        self.dvips_cmd = dvips_cmd
        self.convert_cmd = convert_cmd
        self.template: Template = _env.get_template(template_name)

    @property
    def format(self) -> str:
        return self._format

    def process(self, code: str) -> str:
        """
        Reject formulas containing blacklisted tokens; return the stripped code.

        Raises:
            ValidationError: Listing every forbidden token found
        """
        errors = [token for token in self.blacklist if token in code]
        if errors:
            raise ValidationError(f"Invalid LaTeX commands {', '.join(errors)}", tokens=errors)
        return code.strip()

    def document(self, code: str) -> str:
        """Full LaTeX document wrapping the formula."""
        return self.template.render(code=code, packages=self.packages)

    def render(self, code: str, output_path: Path) -> None:
        output_path = Path(output_path)
        temp_dir = Path(f"{output_path}-tmp")
        temp_dir.mkdir(parents=True, exist_ok=True)

        succeeded = False
        try:
            self._latex_to_dvi(temp_dir, code)
            self._dvi_to_ps(temp_dir)
            self._ps_to_image(temp_dir, output_path)
            succeeded = True
        finally:
            if succeeded or not self.debug:
                shutil.rmtree(temp_dir, ignore_errors=True)
            else:
                _log_warning(f"Keeping scratch directory for inspection: {temp_dir}")

    def _latex_to_dvi(self, temp_dir: Path, code: str) -> None:
        tex_file = temp_dir / "code.tex"
        tex_file.write_text(self.document(code), encoding="utf-8")
        run_stage(
            "latex",
            [
                self.latex_cmd,
                "--interaction=nonstopmode",
                f"--output-directory={temp_dir}",
                tex_file,
            ],
            cwd=temp_dir,
        ).raise_for_status()

    def _dvi_to_ps(self, temp_dir: Path) -> None:
        run_stage(
            "dvips",
            [self.dvips_cmd, "-E", "code.dvi", "-o", "code.ps"],
            cwd=temp_dir,
        ).raise_for_status()

    def _ps_to_image(self, temp_dir: Path, output_path: Path) -> None:
        # Only a complete image is moved into the cache
        image_path = temp_dir / f"code.{self.format}"
        run_stage(
            "convert",
            [self.convert_cmd, *self.convert_opts, temp_dir / "code.ps", image_path],
            cwd=temp_dir,
        ).raise_for_status()
        os.replace(image_path, output_path)
        _log_debug(f"Wrote {output_path}")
