import os
from urllib.parse import quote_plus
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()


class Settings:
    # API基础配置
    API_TITLE = "优汇金融结算API"
    API_VERSION = "1.0.0"
    DESCRIPTION = "入金交易结算、盈利统计与开销记账接口服务"

    # 服务监听地址，run.py 命令行参数可覆盖
    APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT = int(os.getenv("APP_PORT", "3000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

    # 默认环境 (test, prod, local)
    ENVIRONMENT = os.getenv("ENVIRONMENT", "test")

    # 显式指定的数据库连接串，优先于下面的分环境配置
    DATABASE_URL = os.getenv("DATABASE_URL")

    # 测试环境数据库
    DB_TEST_HOST = os.getenv("DB_TEST_HOST", "127.0.0.1")
    DB_TEST_PORT = int(os.getenv("DB_TEST_PORT", "3306"))
    DB_TEST_USER = os.getenv("DB_TEST_USER", "root")
    DB_TEST_PASSWORD = os.getenv("DB_TEST_PASSWORD", "")
    DB_TEST_DATABASE = os.getenv("DB_TEST_DATABASE", "usdt_settlement")

    # 生产环境数据库
    DB_PROD_HOST = os.getenv("DB_PROD_HOST", DB_TEST_HOST)
    DB_PROD_PORT = int(os.getenv("DB_PROD_PORT", DB_TEST_PORT))
    DB_PROD_USER = os.getenv("DB_PROD_USER", DB_TEST_USER)
    DB_PROD_PASSWORD = os.getenv("DB_PROD_PASSWORD", DB_TEST_PASSWORD)
    DB_PROD_DATABASE = os.getenv("DB_PROD_DATABASE", DB_TEST_DATABASE)

    # 本地环境数据库（可选，复用测试环境配置或单独配置）
    DB_LOCAL_HOST = os.getenv("DB_LOCAL_HOST", DB_TEST_HOST)
    DB_LOCAL_PORT = int(os.getenv("DB_LOCAL_PORT", DB_TEST_PORT))
    DB_LOCAL_USER = os.getenv("DB_LOCAL_USER", DB_TEST_USER)
    DB_LOCAL_PASSWORD = os.getenv("DB_LOCAL_PASSWORD", DB_TEST_PASSWORD)
    DB_LOCAL_DATABASE = os.getenv("DB_LOCAL_DATABASE", DB_TEST_DATABASE)

    # 汇率服务配置
    EXCHANGE_RATE_API_URL = os.getenv("EXCHANGE_RATE_API_URL", "https://open.er-api.com/v6/latest/USD")
    EXCHANGE_RATE_TIMEOUT = int(os.getenv("EXCHANGE_RATE_TIMEOUT", "10"))
    # 入金汇率在市场汇率基础上扣除的比例
    DEPOSIT_RATE_DEDUCTION = float(os.getenv("DEPOSIT_RATE_DEDUCTION", "0.03"))
    # 开销换算USDT时上浮的比例
    EXPENSE_USDT_MARKUP = float(os.getenv("EXPENSE_USDT_MARKUP", "0.01"))

    # AI服务配置（OpenAI兼容接口）
    AI_BASE_URL = os.getenv("AI_BASE_URL")
    AI_API_KEY = os.getenv("AI_API_KEY")
    AI_MODEL_NAME = os.getenv("AI_MODEL_NAME", "gpt-4o-mini")

    # 交易录入默认值
    DEFAULT_COMMISSION_PERCENTAGE = float(os.getenv("DEFAULT_COMMISSION_PERCENTAGE", "13.5"))
    DEFAULT_TRANSFER_FEE = float(os.getenv("DEFAULT_TRANSFER_FEE", "25"))
    DEFAULT_MAINTENANCE_DAYS = int(os.getenv("DEFAULT_MAINTENANCE_DAYS", "15"))
    # 美元入金默认承兑回USDT = 入金金额 / 该系数
    USD_ACCEPTANCE_DIVISOR = float(os.getenv("USD_ACCEPTANCE_DIVISOR", "1.02"))

    ENVIRONMENTS = ("test", "prod", "local")

    def resolve_environment(self, environment: str = None) -> str:
        """未传入环境时使用默认环境"""
        environment = environment or self.ENVIRONMENT
        if environment not in self.ENVIRONMENTS:
            raise ValueError(f"不支持的环境：{environment}，仅支持 {'/'.join(self.ENVIRONMENTS)}")
        return environment

    def get_db_config(self, environment: str = None):
        """根据环境获取数据库配置"""
        prefix = f"DB_{self.resolve_environment(environment).upper()}_"
        return {
            key: getattr(self, prefix + key.upper())
            for key in ("host", "port", "user", "password", "database")
        }

    @property
    def database_url(self) -> str:
        """SQLAlchemy连接串，DATABASE_URL 优先"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        db = self.get_db_config()
        return (
            f"mysql+pymysql://{db['user']}:{quote_plus(db['password'])}@"
            f"{db['host']}:{db['port']}/{db['database']}?charset=utf8mb4"
        )


settings = Settings()
