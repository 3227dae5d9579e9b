import warnings
import plotly.graph_objects as go
import plotly.express as px
import pandas as pd
import numpy as np
from pathlib import Path
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler


def _safe_name(text):
    return "".join([c for c in str(text) if c.isalnum() or c in ('-', '_')]).strip() or "feature"


class InteractivePlotter:
    def __init__(self, output_dir):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _subdir(self, name):
        save_dir = self.output_dir / name
        save_dir.mkdir(parents=True, exist_ok=True)
        return save_dir

    def plot_feature_violins(self, X_df, y, dataset_name, max_features=None):
        save_dir = self._subdir("violins")
        plot_df = X_df.copy()
        plot_df['Class'] = [str(lbl) for lbl in y]

        features = list(X_df.columns)
        if max_features is not None:
            features = features[:max_features]

        written = []
        for feature in features:
            fig = px.violin(plot_df, x='Class', y=feature, color='Class', box=True, points="all",
                            title=f"{feature} by class ({dataset_name})")
            path = save_dir / f"{_safe_name(feature)}.html"
            fig.write_html(str(path))
            written.append(path)
        return written

    def plot_statistical_ranking(self, stats_df, alpha=0.05, top_n=20):
        if stats_df.empty:
            return None
        p_col = 'p_value_corrected' if 'p_value_corrected' in stats_df.columns else 'p_value'
        df = stats_df.dropna(subset=[p_col]).sort_values(p_col, ascending=True).head(top_n).iloc[::-1]
        fig = px.bar(df, x=p_col, y='feature_name',
                     title=f"Top {top_n} Features ({p_col})", orientation='h', text=p_col)
        fig.add_vline(x=alpha, line_dash="dash", line_color="red")
        fig.update_traces(texttemplate='%{text:.4f}', textposition='outside')
        path = self.output_dir / "statistical_ranking.html"
        fig.write_html(str(path))
        return path

    def plot_correlation_matrix(self, X_df, dataset_name, filename="correlation_matrix.html"):
        """Plot correlation matrix heatmap of features."""
        save_dir = self._subdir("data_analysis")
        corr_matrix = X_df.corr()

        fig = go.Figure(data=go.Heatmap(
            z=corr_matrix.values,
            x=corr_matrix.columns,
            y=corr_matrix.columns,
            colorscale='RdBu',
            zmid=0,
            zmin=-1,
            zmax=1,
            hovertemplate='Feature 1: %{x}<br>Feature 2: %{y}<br>Correlation: %{z:.3f}<extra></extra>'
        ))
        fig.update_layout(
            title=f"Feature Correlation Matrix - {dataset_name}",
            height=800,
            width=900
        )
        path = save_dir / filename
        fig.write_html(str(path))
        return path

    def plot_pca_2d(self, X_df, y, dataset_name, filename="pca_2d.html"):
        """Plot 2D PCA projection of the standardized features."""
        if X_df.shape[1] < 2:
            warnings.warn(f"Not enough features for 2D PCA (only {X_df.shape[1]})")
            return None

        save_dir = self._subdir("data_analysis")
        X_scaled = StandardScaler().fit_transform(X_df)
        pca = PCA(n_components=2)
        X_pca = pca.fit_transform(X_scaled)
        ratio = pca.explained_variance_ratio_

        pca_df = pd.DataFrame({
            'PC1': X_pca[:, 0],
            'PC2': X_pca[:, 1],
            'Class': [str(label) for label in y]
        })

        fig = px.scatter(
            pca_df,
            x='PC1',
            y='PC2',
            color='Class',
            title=f'PCA 2D Projection - {dataset_name}<br>Explained Variance: PC1={ratio[0]:.2%}, PC2={ratio[1]:.2%}',
            labels={'PC1': f'PC1 ({ratio[0]:.2%})', 'PC2': f'PC2 ({ratio[1]:.2%})'}
        )
        fig.update_traces(marker=dict(size=10, opacity=0.7))
        path = save_dir / filename
        fig.write_html(str(path))
        return path

    def plot_cv_scores(self, cv_summary, best_k=None, filename="cv_accuracy_by_k.html"):
        """Mean cross-validated accuracy per k with one standard deviation band."""
        save_dir = self._subdir("model")
        df = cv_summary.sort_values('k')

        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=df['k'], y=df['mean_accuracy'], mode='lines+markers', name='Mean accuracy',
            error_y=dict(type='data', array=df['std_accuracy'], visible=True)
        ))
        if 'mean_kappa' in df.columns:
            fig.add_trace(go.Scatter(x=df['k'], y=df['mean_kappa'], mode='lines+markers',
                                     name='Mean kappa', line=dict(dash='dot')))
        if best_k is not None:
            fig.add_vline(x=best_k, line_dash="dash", line_color="red",
                          annotation_text=f"k={best_k}")
        fig.update_layout(title="Repeated Cross-Validation by k", xaxis_title="k (neighbors)",
                          yaxis_title="Score")
        path = save_dir / filename
        fig.write_html(str(path))
        return path

    def plot_threshold_curve(self, curve, best_threshold=None, filename="threshold_curve.html"):
        save_dir = self._subdir("model")
        df = curve[np.isfinite(curve['threshold'])]

        fig = go.Figure()
        for column, name in (('sensitivity', 'Sensitivity'), ('specificity', 'Specificity'),
                             ('youden_j', "Youden's J")):
            fig.add_trace(go.Scatter(x=df['threshold'], y=df[column], mode='lines+markers', name=name))
        if best_threshold is not None:
            fig.add_vline(x=best_threshold, line_dash="dash", line_color="red",
                          annotation_text=f"t={best_threshold:.3f}")
        fig.update_layout(title="Sensitivity / Specificity by Threshold", xaxis_title="Threshold",
                          yaxis_title="Rate")
        path = save_dir / filename
        fig.write_html(str(path))
        return path

    def plot_roc_curve(self, curve, auc_value=None, filename="roc_curve.html"):
        save_dir = self._subdir("model")
        df = curve.sort_values(['false_positive_rate', 'sensitivity'])
        name = 'kNN' if auc_value is None or np.isnan(auc_value) else f'kNN (AUC={auc_value:.2f})'

        fig = go.Figure()
        fig.add_shape(type='line', line=dict(dash='dash', color='gray'), x0=0, x1=1, y0=0, y1=1)
        fig.add_trace(go.Scatter(x=df['false_positive_rate'], y=df['sensitivity'], mode='lines', name=name))
        fig.update_layout(title="ROC Curve", xaxis_title="FPR", yaxis_title="TPR")
        path = save_dir / filename
        fig.write_html(str(path))
        return path

    def plot_confusion_matrix(self, matrix, negative_label=0, positive_label=1,
                              title="Confusion Matrix", filename="cm.html"):
        save_dir = self._subdir("confusion_matrices")
        cm = matrix.to_array()
        tick_labels = [str(negative_label), str(positive_label)]
        annotations = []
        for i in range(cm.shape[0]):
            for j in range(cm.shape[1]):
                annotations.append(dict(x=tick_labels[j], y=tick_labels[i], text=str(cm[i, j]),
                                        showarrow=False, font=dict(color='white')))
        fig = go.Figure(data=go.Heatmap(z=cm, x=tick_labels, y=tick_labels, colorscale='Blues',
                                        showscale=False))
        fig.update_layout(title=title, xaxis_title="Predicted", yaxis_title="True", annotations=annotations)
        path = save_dir / filename
        fig.write_html(str(path))
        return path
