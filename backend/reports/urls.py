from django.urls import path
from . import views

app_name = 'reports'

urlpatterns = [
    path('', views.reports, name='reports'),
    path('nearby/', views.nearby_reports, name='nearby'),
    path('mine/', views.my_reports, name='mine'),
    path('<int:report_id>/', views.report_detail, name='detail'),
    path('<int:report_id>/responses/', views.report_responses, name='responses'),

    # Lifecycle actions
    path('<int:report_id>/respond/', views.respond_to_report, name='respond'),
    path('<int:report_id>/claim/', views.claim_report, name='claim'),
    path('<int:report_id>/status/', views.update_report_status, name='status'),
]
