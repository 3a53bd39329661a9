"""Build artifact size analysis

Sizes are estimates whenever the artifact is not present on disk: a fixed
filename-pattern lookup stands in for a real measurement.
"""

import json
from collections import Counter
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import structlog

logger = structlog.get_logger()

KB = 1024
MB = 1024 * 1024

GZIP_RATIO = 0.3

KNOWN_MODULE_SIZES: Dict[str, float] = {
    "react": 6.4 * KB,
    "react-dom": 130 * KB,
    "monaco-editor": 500 * KB,
    "@monaco-editor/react": 50 * KB,
    "axios": 15 * KB,
    "react-router-dom": 25 * KB,
    "recharts": 100 * KB,
}

DEFAULT_MODULE_SIZE = 10 * KB


@dataclass
class BundleChunk:
    name: str
    size: int
    gzip_size: int
    modules: List[str] = field(default_factory=list)
    estimated: bool = True


@dataclass
class DuplicateModule:
    module: str
    instances: int
    total_size: int


@dataclass
class DependencySize:
    name: str
    size: int
    percentage: float


@dataclass
class BundleAnalysis:
    total_size: int
    chunks: List[BundleChunk]
    duplicates: List[DuplicateModule]
    largest_dependencies: List[DependencySize]
    source: str = "manifest"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def estimate_file_size(file_path: str) -> int:
    """Guess an artifact's size from its name"""
    if "vendor" in file_path or "chunk" in file_path:
        return 200 * KB
    if "monaco" in file_path:
        return 500 * KB
    if "react" in file_path:
        return 50 * KB
    return 30 * KB


def estimate_module_size(module: str) -> int:
    return int(KNOWN_MODULE_SIZES.get(module, DEFAULT_MODULE_SIZE))


def known_dependency_sizes() -> List[DependencySize]:
    return [
        DependencySize("monaco-editor", 500 * KB, 35),
        DependencySize("react-dom", 130 * KB, 25),
        DependencySize("recharts", 100 * KB, 15),
        DependencySize("@monaco-editor/react", 50 * KB, 10),
        DependencySize("react-router-dom", 25 * KB, 5),
        DependencySize("axios", 15 * KB, 3),
        DependencySize("react", int(6.4 * KB), 2),
    ]


def find_duplicate_modules(chunks: Sequence[BundleChunk]) -> List[DuplicateModule]:
    """Modules imported by more than one chunk"""
    counts = Counter(module for chunk in chunks for module in set(chunk.modules))
    return [
        DuplicateModule(module=module, instances=count, total_size=estimate_module_size(module) * count)
        for module, count in counts.items()
        if count > 1
    ]


def identify_largest_dependencies(chunks: Sequence[BundleChunk], limit: int = 10) -> List[DependencySize]:
    total = sum(chunk.size for chunk in chunks)
    ranked = sorted(chunks, key=lambda c: c.size, reverse=True)[:limit]
    return [
        DependencySize(name=chunk.name, size=chunk.size,
                       percentage=(chunk.size / total) * 100 if total else 0.0)
        for chunk in ranked
    ]


def generate_optimization_recommendations(analysis: BundleAnalysis) -> List[str]:
    recommendations = []

    if analysis.total_size > MB:
        recommendations.append("Bundle size is large (>1MB) - consider code splitting")

    large = [dep for dep in analysis.largest_dependencies if dep.percentage > 20]
    if large:
        recommendations.append(f"Large dependencies detected: {', '.join(dep.name for dep in large)}")
        recommendations.append("Consider lazy loading or finding lighter alternatives")

    if analysis.duplicates:
        recommendations.append("Duplicate modules found - check bundler deduplication settings")
        recommendations.append("Consider better tree shaking or shared chunks")

    if any(chunk.size > 250 * KB for chunk in analysis.chunks):
        recommendations.append("Large chunks detected - improve code splitting")
        recommendations.append("Consider dynamic imports for route-level splitting")

    monaco = next((dep for dep in analysis.largest_dependencies if "monaco" in dep.name), None)
    if monaco and monaco.percentage > 30:
        recommendations.append("Monaco Editor is a significant portion of bundle")
        recommendations.append("Consider lazy loading Monaco Editor only when needed")

    return recommendations


def format_analysis_report(analysis: BundleAnalysis) -> str:
    def mb(size: float) -> str:
        return f"{size / MB:.2f} MB"

    lines = [
        "Bundle Analysis Report",
        "========================",
        "",
        f"Total Bundle Size: {mb(analysis.total_size)}",
        "",
        "Largest Dependencies:",
    ]
    for dep in analysis.largest_dependencies:
        lines.append(f"  {dep.name}: {mb(dep.size)} ({dep.percentage:.1f}%)")

    if analysis.duplicates:
        lines.append("")
        lines.append("Duplicate Modules:")
        for dup in analysis.duplicates:
            lines.append(f"  {dup.module}: {dup.instances} instances, {mb(dup.total_size)} total")

    lines.append("")
    lines.append("Optimization Recommendations:")
    for recommendation in generate_optimization_recommendations(analysis):
        lines.append(f"  - {recommendation}")

    return "\n".join(lines) + "\n"


class BundleAnalyzer:
    """Analyze a build directory, falling back to loaded-script introspection"""

    def __init__(self,
                 dist_dir: Union[str, Path] = "dist",
                 manifest_path: Optional[Union[str, Path]] = None,
                 script_source: Optional[Callable[[], Sequence[str]]] = None):
        self.dist_dir = Path(dist_dir)
        self.manifest_path = Path(manifest_path) if manifest_path else self.dist_dir / ".vite" / "manifest.json"
        self.script_source = script_source
        self.last_analysis: Optional[BundleAnalysis] = None

    def analyze(self) -> BundleAnalysis:
        try:
            manifest = self.load_manifest()
            analysis = self.analyze_manifest(manifest)
        except (OSError, ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning("Could not analyze build manifest, using fallback analysis",
                           path=str(self.manifest_path), error=str(e))
            analysis = self.runtime_analysis()

        self.last_analysis = analysis
        logger.info("Bundle analyzed",
                    source=analysis.source,
                    total_size=analysis.total_size,
                    chunks=len(analysis.chunks),
                    duplicates=len(analysis.duplicates))
        return analysis

    def load_manifest(self) -> Dict[str, Any]:
        with open(self.manifest_path, "r", encoding="utf-8") as f:
            manifest = json.load(f)
        if not isinstance(manifest, dict):
            raise ValueError("manifest must be a JSON object")
        return manifest

    def _chunk_size(self, file_name: str) -> Dict[str, Any]:
        path = self.dist_dir / file_name
        if path.is_file():
            return {"size": path.stat().st_size, "estimated": False}
        return {"size": estimate_file_size(file_name), "estimated": True}

    def analyze_manifest(self, manifest: Dict[str, Any]) -> BundleAnalysis:
        chunks = []
        for key, entry in manifest.items():
            if not isinstance(entry, dict):
                continue
            file_name = entry.get("file")
            if not isinstance(file_name, str) or not file_name.endswith(".js"):
                continue
            imports = entry.get("imports")
            if not isinstance(imports, list):
                imports = []

            measured = self._chunk_size(file_name)
            chunks.append(BundleChunk(
                name=key,
                size=measured["size"],
                gzip_size=round(measured["size"] * GZIP_RATIO),
                modules=[module for module in imports if isinstance(module, str)],
                estimated=measured["estimated"],
            ))

        return BundleAnalysis(
            total_size=sum(chunk.size for chunk in chunks),
            chunks=chunks,
            duplicates=find_duplicate_modules(chunks),
            largest_dependencies=identify_largest_dependencies(chunks),
            source="manifest",
        )

    def runtime_analysis(self) -> BundleAnalysis:
        scripts = list(self.script_source()) if self.script_source else []

        chunks = []
        for index, src in enumerate(scripts):
            if ".js" not in src:
                continue
            size = estimate_file_size(src)
            chunks.append(BundleChunk(name=f"chunk-{index}", size=size, gzip_size=round(size * GZIP_RATIO)))

        return BundleAnalysis(
            total_size=sum(chunk.size for chunk in chunks),
            chunks=chunks,
            duplicates=[],
            largest_dependencies=known_dependency_sizes(),
            source="runtime",
        )

    def generate_optimization_recommendations(self, analysis: Optional[BundleAnalysis] = None) -> List[str]:
        analysis = analysis or self.last_analysis
        if analysis is None:
            return []
        return generate_optimization_recommendations(analysis)

    def format_analysis_report(self, analysis: Optional[BundleAnalysis] = None) -> str:
        return format_analysis_report(analysis or self.analyze())
