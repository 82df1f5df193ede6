import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.dirname(__file__))

TODAY = date(2026, 10, 16)

SAMPLE_TRACE = """System.InvalidOperationException: Order total mismatch
   at System.Linq.Enumerable.First[TSource](IEnumerable`1 source)
   at App.Orders.OrderService.Submit(Order o) in C:\\src\\App\\Orders\\OrderService.cs:line 42
   at App.Orders.OrderService.<SubmitAsync>d__5.MoveNext()
   at System.Runtime.CompilerServices.TaskAwaiter.ThrowForNonSuccess(Task task)
   at App.Web.Controllers.OrdersController.Post(OrderDto dto)
   at App.Orders.OrderService.Submit(Order o)
"""

ORDER_SERVICE_SOURCE = """using System;

namespace App.Orders
{
    public class OrderService
    {
        public void Submit(Order o)
        {
            if (o == null)
            {
                throw new ArgumentNullException(nameof(o));
            }
            Save(o);
        }

        public async Task SubmitAsync(Order o)
        {
            await Task.Run(() => Submit(o));
        }

        private void Save(Order o)
        {
        }
    }
}
"""


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith("TRACE_BLAME_"):
            monkeypatch.delenv(name)


@pytest.fixture
def sample_trace():
    return SAMPLE_TRACE


@pytest.fixture
def project_tree(tmp_path):
    """Small C# tree with two OrderService.cs files"""
    orders = tmp_path / "App" / "Orders"
    orders.mkdir(parents=True)
    (orders / "OrderService.cs").write_text(ORDER_SERVICE_SOURCE, encoding="utf-8")

    legacy = tmp_path / "Legacy"
    legacy.mkdir()
    (legacy / "OrderService.cs").write_text("public class OrderService { }\n", encoding="utf-8")

    controllers = tmp_path / "App" / "Web" / "Controllers"
    controllers.mkdir(parents=True)
    (controllers / "OrdersController.cs").write_text(
        "public class OrdersController\n{\n    public IActionResult Get(int id)\n    {\n        return Ok();\n    }\n}\n",
        encoding="utf-8",
    )
    return tmp_path
