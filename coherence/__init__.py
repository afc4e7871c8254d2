"""coherence - 多仓库构建产物一致性校验与按依赖顺序发布"""

__version__ = "0.3.0"
