from datetime import datetime
from typing import List

from pydantic import BaseModel


class OrdersStats(BaseModel):
    total: int
    today: int
    growth: float


class PendingOrders(BaseModel):
    count: int
    last_update: datetime


class RevenueStats(BaseModel):
    total: float
    this_week: float
    growth: float


class CustomerStats(BaseModel):
    total: int
    new_this_week: int
    growth: float


class DaySales(BaseModel):
    day: str
    value: float


class SalesChart(BaseModel):
    data: List[DaySales]
    current_day: str


class PopularProduct(BaseModel):
    name: str
    sales: int


class DashboardInsights(BaseModel):
    orders_stats: OrdersStats
    pending_orders: PendingOrders
    revenue: RevenueStats
    customers: CustomerStats
    sales_chart: SalesChart
    popular_products: List[PopularProduct]


class InsightsOut(BaseModel):
    insights: DashboardInsights
