"""reposcraper - 远程代码仓检出与增量更新"""

__version__ = "0.1.0"
